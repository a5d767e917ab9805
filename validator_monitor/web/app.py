"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..services.monitor import ValidatorMonitor
from .routes import router


def create_app(monitor: ValidatorMonitor | None = None, auto_refresh: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    The app owns one monitor for its lifetime and runs auto-refresh while
    it is up.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = monitor or ValidatorMonitor()
        await active.load()
        if auto_refresh:
            active.start()
        app.state.monitor = active
        try:
            yield
        finally:
            await active.close()

    app = FastAPI(
        title="ETH Validator Monitor",
        description="Monitor your Ethereum validators with data from Beaconcha.in",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(router, prefix="/api")
    return app
