"""
MODULE OVERVIEW:
The FastAPI application factory for the mock ship.

WHAT IS HAPPENING HERE:
`create_app()` builds a fresh app around a `ShipState`, so tests can get an
isolated ship while `uvicorn` serves the module-level `app`. The `lifespan`
spawns the fake DM chatter as a background task and cancels it on shutdown.
"""

from fastapi import FastAPI
import asyncio
from contextlib import asynccontextmanager
from loguru import logger

from urbit_channel.mock_ship.dummy_data import dm_chatter_generator
from urbit_channel.mock_ship.middleware import TimingMiddleware
from urbit_channel.mock_ship.routes import channel, login, mock, scry
from urbit_channel.mock_ship.ship_state import ShipState
from urbit_channel.shared.config import settings


async def chatter_runner(ship: ShipState, generator):
    """Consumes the chatter generator and fans each message out to subscribers."""
    try:
        async for app_name, path, content in generator:
            delivered = ship.emit(app_name, path, content)
            if delivered:
                logger.debug(f"event=chatter app={app_name} path={path} delivered={delivered}")
    except asyncio.CancelledError:
        logger.debug("Chatter generator cancelled")
    except Exception as e:
        logger.error(f"Chatter generator error: {e}")


def create_app(
    ship: ShipState | None = None,
    chatter_interval_s: float | None = None,
    ping_interval_s: int | None = None,
) -> FastAPI:
    ship = ship or ShipState(settings.MOCK_SHIP_NAME, settings.MOCK_SHIP_CODE)
    if chatter_interval_s is None:
        chatter_interval_s = settings.MOCK_CHATTER_INTERVAL_S

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # STARTUP
        logger.info(f"Mock ship ~{ship.ship} starting up...")
        background_tasks = set()
        if chatter_interval_s > 0:
            task = asyncio.create_task(chatter_runner(ship, dm_chatter_generator(chatter_interval_s)))
            background_tasks.add(task)

        yield

        # SHUTDOWN
        logger.info("Mock ship shutting down. Ending streams...")
        ship.drop_streams()
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Mock Urbit Ship",
        description="An in-process stand-in for a ship's HTTP channel API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.ship = ship
    app.state.ping_interval_s = ping_interval_s or settings.MOCK_SSE_PING_INTERVAL_S

    app.add_middleware(TimingMiddleware)

    app.include_router(login.router, tags=["Auth"])
    app.include_router(channel.router, tags=["Channel"])
    app.include_router(scry.router, tags=["Scry"])
    app.include_router(mock.router, tags=["Mock Controls"])

    @app.get("/healthz", tags=["Ops"])
    async def health_check():
        return {"status": "ok", "ship": f"~{ship.ship}"}

    return app


app = create_app()
