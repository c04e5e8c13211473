"""Main API router."""

from fastapi import APIRouter

from trim_engine.api.v1.endpoints import projects, videos, downloads, operations, outputs, system

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(videos.router, prefix="/videos", tags=["Videos"])
api_router.include_router(downloads.router, prefix="/downloads", tags=["Downloads"])
api_router.include_router(operations.router, prefix="/operations", tags=["Operations"])
api_router.include_router(outputs.router, prefix="/outputs", tags=["Outputs"])
api_router.include_router(system.router, prefix="/system", tags=["System"])
