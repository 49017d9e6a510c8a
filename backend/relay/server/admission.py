"""Version gate run on every new relay connection before it may touch a lobby."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relay.server.settings import RelayServerSettings

logger = structlog.get_logger()


class UnsupportedVersionError(Exception):
    """Raised when a client's declared version is missing, unparsable or unsupported."""

    def __init__(self, supported_versions: Iterable[str], user_agent: str) -> None:
        self.supported_versions = list(supported_versions)
        self.user_agent = user_agent
        super().__init__(
            "The voice server does not support your version of DispatchLink.\n"
            f"Supported versions: {','.join(self.supported_versions)}",
        )

    @property
    def message(self) -> str:
        return str(self)


@dataclass(frozen=True)
class ClientVersion:
    """What an admitted client declared in its user agent (unknown when bypassed)."""

    version: str | None
    platform: str | None


class AdmissionFilter:
    """Check a ``Name/Major.Minor.Patch (Platform)`` user agent against supported versions.

    ``admit_all`` is the explicit bypass switch; it admits every client but
    still logs what each one declared.
    """

    def __init__(
        self,
        supported_versions: Iterable[str],
        client_names: Iterable[str] = ("CrewLink", "DispatchLink"),
        *,
        admit_all: bool = False,
    ) -> None:
        self._supported_versions = tuple(supported_versions)
        names = "|".join(re.escape(name) for name in client_names)
        self._pattern = re.compile(rf"^(?:{names})/(\d+\.\d+\.\d+) \((\w+)\)$")
        self._admit_all = admit_all

    @classmethod
    def from_settings(cls, settings: RelayServerSettings) -> AdmissionFilter:
        return cls(
            settings.supported_versions,
            settings.client_names,
            admit_all=settings.admit_all_versions,
        )

    @property
    def supported_versions(self) -> tuple[str, ...]:
        return self._supported_versions

    def admit(self, user_agent: str) -> ClientVersion:
        """Return the parsed client version, or raise UnsupportedVersionError."""
        match = self._pattern.match(user_agent)
        version = match.group(1) if match else None
        platform = match.group(2) if match else None
        logger.info("client connecting", client_version=version, platform=platform)

        if self._admit_all:
            logger.info("version check bypassed", user_agent=user_agent)
            return ClientVersion(version=version, platform=platform)
        if version is None or version not in self._supported_versions:
            logger.info("client rejected", user_agent=user_agent, supported_versions=self._supported_versions)
            raise UnsupportedVersionError(self._supported_versions, user_agent)
        return ClientVersion(version=version, platform=platform)
