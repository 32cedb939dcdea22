"""
Main FastAPI application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .core import Settings, build_engine, build_session_maker, settings as default_settings
from .services import ExpirySweeper, SessionLockRegistry, SessionManager, StagingStorage, build_asset_store

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    settings = app.state.settings
    logger.info("🚀 Starting Upload Engine...")

    await app.state.manager.initialize()
    app.state.sweeper.start()

    logger.info(f"🌐 Server ready at http://{settings.SERVER_HOST}:{settings.SERVER_PORT}")
    logger.info(f"📖 API docs at http://{settings.SERVER_HOST}:{settings.SERVER_PORT}/docs")

    yield

    logger.info("🛑 Shutting down Upload Engine...")
    await app.state.sweeper.stop()
    await app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application and its collaborators from ``settings``"""
    settings = settings or default_settings

    app = FastAPI(
        title=settings.APP_TITLE,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )

    engine = build_engine(settings)
    session_maker = build_session_maker(engine)
    manager = SessionManager(
        settings,
        engine=engine,
        staging=StagingStorage(settings.STAGING_DIR),
        asset_store=build_asset_store(settings),
        locks=SessionLockRegistry()
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.manager = manager
    app.state.sweeper = ExpirySweeper(manager, session_maker, settings.SWEEP_INTERVAL_SECONDS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": settings.APP_TITLE,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "sweeper": "running" if app.state.sweeper.running else "stopped",
            "activeSessionLocks": len(manager.locks)
        }

    return app


configure_logging(default_settings.LOG_LEVEL)

app = create_app()


def run():
    import uvicorn
    uvicorn.run(
        "upload_engine.main:app",
        host=default_settings.SERVER_HOST,
        port=default_settings.SERVER_PORT,
        log_level=default_settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
