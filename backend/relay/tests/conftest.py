import pytest
from starlette.testclient import TestClient

from relay.messaging.router import MessageRouter
from relay.server.app import create_app
from relay.server.settings import RelayServerSettings
from relay.session.manager import SessionManager
from relay.tests.mocks import MockConnection


@pytest.fixture
def settings():
    return RelayServerSettings(address="relay.test.local", name="test-relay", supported_versions=["1.2.0"])


@pytest.fixture
def session_manager():
    return SessionManager()


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def connect(session_manager):
    """Register a MockConnection with the session manager and return it."""

    def _connect(connection_id: str | None = None) -> MockConnection:
        connection = MockConnection(connection_id)
        session_manager.register_connection(connection)
        return connection

    return _connect


@pytest.fixture
def app(settings, session_manager, message_router):
    return create_app(settings=settings, session_manager=session_manager, message_router=message_router)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
