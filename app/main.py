import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from app.core.db import init_db, close_db
from app.api.v1.customers import router as customers_router
from app.api.v1.outbox import router as outbox_router
from app.consumers.outbox_poller import OutboxRelay
from app.core.config import PROJECT_NAME, VERSION, RELAY_ENABLED, RELAY_INTERVAL
from app.core.exception_handlers import setup_exception_handlers
from app.events.broker import build_broker
from app.events.store import TortoiseOutboxStore

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas

    relay = None
    broker = None
    if RELAY_ENABLED:
        broker = build_broker()
        relay = OutboxRelay(TortoiseOutboxStore(), broker)
        relay.start(RELAY_INTERVAL)
    app.state.outbox_relay = relay

    yield

    if relay is not None:
        await relay.stop(timeout=RELAY_INTERVAL * 2)
        await broker.close()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(customers_router, prefix="/api/v1/customers", tags=["Customer Registration"])
app.include_router(outbox_router, prefix="/api/v1/outbox", tags=["Outbox"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
