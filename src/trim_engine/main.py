"""Trim Engine - Main FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trim_engine.api.v1.router import api_router
from trim_engine.core.config import settings
from trim_engine.core.database import init_db, close_db
from trim_engine.core.operations import OperationManager
from trim_engine.core.storage import StorageManager

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Trim Engine v%s", settings.VERSION)

    StorageManager.get_instance().initialize()

    await init_db()
    logger.info("Database initialized")

    # Operations live only as long as this process
    operations = OperationManager()
    await operations.start()
    app.state.operations = operations

    from trim_engine.services.ffmpeg import FFmpegService
    ffmpeg = FFmpegService.get_instance()
    if await ffmpeg.check_availability():
        logger.info("FFmpeg %s available", ffmpeg.version)
    else:
        logger.warning("FFmpeg not found! Video processing will fail.")

    yield

    logger.info("Shutting down Trim Engine...")
    from trim_engine.services.downloads import DownloadService
    await DownloadService.get_instance().shutdown()
    await operations.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Lossless video trimming backend around ffmpeg and yt-dlp",
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.DEBUG else settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    @app.get("/health")
    async def health_check():
        from trim_engine.services.ffmpeg import FFmpegService

        ffmpeg = FFmpegService.get_instance()
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "services": {
                "ffmpeg": await ffmpeg.check_availability(),
                "operations": app.state.operations.running,
                "database": True,
            },
        }

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


def main():
    """Run the application."""
    import uvicorn

    uvicorn.run(
        "trim_engine.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
