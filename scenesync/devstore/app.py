"""
FastAPI application factory for the SceneSync dev store.

The dev store is a local stand-in for the remote JSON store, so a worker can
be run and tested end to end without a Firebase project.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from .config import Settings
from .routes import router
from .store import JsonStore


def create_app(settings: Optional[Settings] = None, store: Optional[JsonStore] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="SceneSync Dev Store",
        description="Local emulator of the Realtime Database REST subset used by SceneSync.",
        version=__version__,
    )
    app.state.settings = settings
    app.state.store = store or JsonStore()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    # The database reports errors as {"error": "..."}
    @app.exception_handler(HTTPException)
    async def database_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "scenesync-devstore", "writes": app.state.store.writes}

    return app
