import os
from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio

# --- SETUP: settings are read once, so set them before importing app components ---
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EVENTS_API_KEY"] = "test-events-key"

from firebase_admin import exceptions, messaging
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# --- App Imports ---
from main import app
from app.database.connection import Base, get_db, get_session_factory
from app.services.dispatcher import Dispatcher
from app.services.firebase_app import get_dispatcher

# --- Test DB Setup ---
DATABASE_URL = "sqlite+aiosqlite:///:memory:"
engine = create_async_engine(DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


class FakePushGateway:
    """Records every FCM message; recipients registered with fail() raise instead."""

    def __init__(self):
        self.sent: List[messaging.Message] = []
        self.failures: Dict[str, exceptions.FirebaseError] = {}

    def fail(self, recipient: str, error: exceptions.FirebaseError):
        self.failures[recipient] = error

    async def send(self, message: messaging.Message) -> str:
        self.sent.append(message)
        recipient = message.token or message.topic
        if recipient in self.failures:
            raise self.failures[recipient]
        return f"projects/test-project/messages/{len(self.sent)}"

    @property
    def recipients(self) -> List[str]:
        return [message.token or message.topic for message in self.sent]


# --- CORE FIXTURES ---

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with TestingSessionLocal() as session:
        yield session
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def gateway() -> FakePushGateway:
    return FakePushGateway()


@pytest.fixture
def dispatcher(gateway: FakePushGateway) -> Dispatcher:
    return Dispatcher(gateway)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, dispatcher: Dispatcher) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def mock_verify_id_token(mocker):
    """Mocks Firebase ID token verification where the auth dependency uses it."""
    return mocker.patch("app.services.firebase_auth.auth.verify_id_token")


@pytest.fixture
def session_factory() -> async_sessionmaker:
    return TestingSessionLocal
