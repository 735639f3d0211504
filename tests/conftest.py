import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# In-memory DB and no external API keys for tests
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["OFFLINE_MODE"] = "false"
os.environ["GATEWAY_TIMEOUT_SECONDS"] = "0"

from mediremind.database import KeyValueStore, close_db, init_db
from mediremind.main import app
from mediremind.models.analysis import (
    InteractionOutcome,
    MedicineDetails,
    MedicineIdentification,
    Severity,
)
from mediremind.services.event_bus import SessionEventBus
from mediremind.services.profile_store import ProfileStore
from mediremind.services.session import SessionController


class FakeGateway:
    """Stand-in for InferenceGateway that records calls."""

    def __init__(self) -> None:
        self.identification = MedicineIdentification(
            name="Ibuprofen",
            details=MedicineDetails(dosage="200 mg", usage="Pain relief"),
        )
        self.interaction = InteractionOutcome(has_conflict=False, severity=Severity.NONE)
        self.identify_error: Exception | None = None
        self.interaction_error: Exception | None = None
        self.identify_calls: list[tuple[bytes, str]] = []
        self.interaction_calls: list[tuple[str, list[str], str]] = []

    async def identify(self, image: bytes, language_hint: str = "English") -> MedicineIdentification:
        self.identify_calls.append((image, language_hint))
        if self.identify_error is not None:
            raise self.identify_error
        return self.identification

    async def check_interactions(
        self,
        candidate_name: str,
        existing_names: list[str],
        language_hint: str = "English",
    ) -> InteractionOutcome:
        self.interaction_calls.append((candidate_name, list(existing_names), language_hint))
        if self.interaction_error is not None:
            raise self.interaction_error
        return self.interaction


class Connectivity:
    def __init__(self, online: bool = True) -> None:
        self.online = online
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.online


@pytest_asyncio.fixture
async def db():
    """Provide a fresh in-memory database for each test."""
    import mediremind.database as db_mod

    if db_mod._db is not None:
        try:
            await db_mod._db.close()
        except Exception:
            pass
    db_mod._db = None
    db_mod.DATABASE_PATH = ":memory:"

    await init_db()
    database = await db_mod.get_db()
    yield database
    await close_db()


@pytest_asyncio.fixture
async def kv(db):
    return KeyValueStore(db)


@pytest_asyncio.fixture
async def store(kv):
    profile_store = ProfileStore(kv)
    await profile_store.load()
    return profile_store


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def connectivity():
    return Connectivity()


@pytest_asyncio.fixture
async def session(kv, gateway, connectivity):
    controller = SessionController(
        store=ProfileStore(kv),
        gateway=gateway,
        connectivity=connectivity,
        event_bus=SessionEventBus(),
    )
    await controller.start()
    return controller


@pytest.fixture
def client(session):
    """Provide a synchronous TestClient for WebSocket tests."""
    app.state.session = session
    yield TestClient(app)
    app.state.session = None


@pytest_asyncio.fixture
async def async_client(session):
    """Provide an async httpx client for HTTP tests."""
    app.state.session = session
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.session = None
