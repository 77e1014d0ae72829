"""
MODULE OVERVIEW:
FastAPI middleware that times every request to the mock ship.

WHAT IS HAPPENING HERE:
We add an `X-Process-Time-Ms` header so a client author can tell ship-side
overhead on PUT/scry requests apart from network latency.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"

        # Stream GETs stay open for minutes, their timing is meaningless
        if not (request.method == "GET" and request.url.path.startswith("/~/channel/")):
            logger.debug(f"{request.method} {request.url.path} completed in {process_time_ms:.2f}ms")

        return response
