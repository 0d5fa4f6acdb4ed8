"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hydro_server import __version__
from hydro_server.api import acks_router, commands_router, rules_router
from hydro_server.api.deps import init_services
from hydro_server.core.config import settings
from hydro_server.database import engine, init_db
from hydro_server.services.command_queue import CommandQueue
from hydro_server.services.rule_dispatcher import RuleDispatcher
from hydro_server.services.timeout_recovery import TimeoutRecovery

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Service instances
command_queue = CommandQueue()
rule_dispatcher = RuleDispatcher(command_queue)
timeout_recovery = TimeoutRecovery(command_queue)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting Hydro Relay Queue v{__version__}")

    logger.info("Initializing database...")
    await init_db()
    logger.info("Database initialized")

    init_services(command_queue, rule_dispatcher)
    if settings.sweep_enabled:
        await timeout_recovery.start()
    else:
        logger.info("Background timeout sweep disabled, relying on claim-time recovery")

    logger.info(f"Server ready on {settings.host}:{settings.port}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if timeout_recovery.running:
        await timeout_recovery.stop()
    await engine.dispose()


app = FastAPI(
    title="Hydro Relay Queue",
    description="Relay command queue for greenhouse controllers",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(commands_router)
app.include_router(acks_router)
app.include_router(rules_router)


@app.get("/")
async def root() -> dict:
    """Root endpoint with server info."""
    return {
        "name": "Hydro Relay Queue",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "timeout_recovery": timeout_recovery.running,
        "queue": await command_queue.get_queue_stats(),
    }


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "hydro_server.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
