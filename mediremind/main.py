import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mediremind.database import KeyValueStore, close_db, get_db, init_db
from mediremind.routers import profiles, scan, stream
from mediremind.services.connectivity import ConnectivityProbe
from mediremind.services.event_bus import SessionEventBus
from mediremind.services.inference_gateway import InferenceGateway
from mediremind.services.profile_store import ProfileStore
from mediremind.services.session import SessionController

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def build_session() -> SessionController:
    await init_db()
    store = ProfileStore(KeyValueStore(await get_db()))
    session = SessionController(
        store=store,
        gateway=InferenceGateway(),
        connectivity=ConnectivityProbe(),
        event_bus=SessionEventBus(),
    )
    await session.start()
    return session


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Medi-Remind...")
    app.state.session = await build_session()
    logger.info("Profiles loaded")
    yield
    await app.state.session.reset()
    await close_db()
    logger.info("Medi-Remind shut down")


app = FastAPI(
    title="Medi-Remind",
    description="Medicine identification, interaction checks and reminders for local profiles",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(profiles.router)
app.include_router(scan.router)
app.include_router(stream.router)
