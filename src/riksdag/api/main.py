"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from riksdag.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Close the shared HTTP client if a sync ever ran in this process
        await sync_routes.close_sync_service()

    app = FastAPI(
        title="Riksdag Sync API",
        description="Trigger and monitor Riksdag open-data synchronization",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
