"""Relay server configuration via environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource

_HTTP_PORT = 9736
_HTTPS_PORT = 443


class RelayEnvSettingsSource(StringListEnvSettingsSource):
    string_list_fields = frozenset({"supported_versions", "client_names", "cors_origins"})


class RelayServerSettings(BaseSettings):
    model_config = {"env_prefix": "RELAY_"}

    address: str = Field(default="vc.dispatchplays.tv", min_length=1)
    name: str | None = None
    host: str = "0.0.0.0"  # noqa: S104
    port: int | None = Field(default=None, ge=1, le=65535)  # None: 443 with https, 9736 without
    https: bool = False
    ssl_path: Path = Path()
    supported_versions: list[str] = ["1.2.0"]
    client_names: list[str] = ["CrewLink", "DispatchLink"]
    # Admit every client regardless of its declared version. Off unless set explicitly.
    admit_all_versions: bool = False
    cors_origins: list[str] = []
    log_dir: str | None = None

    @field_validator("supported_versions", "client_names", mode="before")
    @classmethod
    def validate_required_lists(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @field_validator("client_names")
    @classmethod
    def validate_client_names(cls, v: list[str]) -> list[str]:
        for name in v:
            if not name.replace("-", "").replace("_", "").isalnum():
                raise ValueError(f"client name {name!r} must be alphanumeric")
        return v

    @model_validator(mode="after")
    def _default_port(self) -> Self:
        if self.port is None:
            self.port = _HTTPS_PORT if self.https else _HTTP_PORT
        return self

    @property
    def ssl_keyfile(self) -> Path:
        return self.ssl_path / "privkey.pem"

    @property
    def ssl_certfile(self) -> Path:
        return self.ssl_path / "fullchain.pem"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, RelayEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
