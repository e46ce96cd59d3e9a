"""REST API for Beastwatch.

Endpoints:
  POST /run     - Trigger one run (for external schedulers), returns its status
  GET  /health  - Health check (DB connectivity)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from beastwatch.jobs.runner import JobRunner
from beastwatch.storage.database import Database

logger = logging.getLogger(__name__)


def create_app(
    runner: JobRunner,
    database: Database,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def run(request: Request) -> JSONResponse:
        """POST /run - Execute one run and report ok / error."""
        if runner.busy:
            return JSONResponse({"status": "busy"}, status_code=409)
        try:
            report = await runner.run()
        except Exception as e:
            logger.exception("Triggered run crashed")
            return JSONResponse({"status": "error", "error": str(e)}, status_code=500)
        return JSONResponse(report.to_dict(), status_code=200 if report.ok else 500)

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        try:
            async with database.session() as session:
                await session.execute(text("SELECT 1"))
            return JSONResponse({"status": "healthy"})
        except Exception as e:
            return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)

    routes = [
        Route("/run", run, methods=["POST"]),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
