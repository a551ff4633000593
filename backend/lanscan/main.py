import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logging import setup_logging
from .db.database import init_db
from .api.routes import router as api_router
from .api.websocket import router as ws_router, scanner_callback
from .scanner.network_scanner import NetworkScanner

logger = logging.getLogger(__name__)

# Global scanner instance
scanner = NetworkScanner(scan_interval=settings.SCAN_INTERVAL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()
    logger.info("Database initialized")

    scanner.register_callback(scanner_callback)

    await scanner.start_background_scanning()
    logger.info(f"Background scanning started (interval: {settings.SCAN_INTERVAL}s)")

    yield

    logger.info("Shutting down...")
    scanner.unregister_callback(scanner_callback)
    await scanner.close()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="LAN device discovery through the Freebox API or subnet probing",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api", tags=["API"])
app.include_router(ws_router, tags=["WebSocket"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "scanner_running": scanner._running,
        "source": scanner.source.name,
        "auth": scanner.auth_status,
    }
