"""Milestone REST API — analytics endpoints for the dashboard.

Split into domain modules under milestone/api/. Each module exports a
register_routes(router, svc) function that adds its endpoints.
"""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from milestone import __version__
from milestone.api.utils import APIKeyAuthMiddleware
from milestone.core.services import Services
from milestone.core.utils import CollaboratorError, InputError

logger = logging.getLogger(__name__)


def create_api(svc: Services) -> FastAPI:
    """Build the REST API as a FastAPI app.

    Designed to be mounted under /api by the server entry point, which owns
    the DB lifecycle.
    """
    db = svc.db
    config = svc.config

    def _release_db_conn():
        """Release any DB connection the request thread still holds."""
        yield
        db.release_if_held()

    app = FastAPI(
        title="Milestone API",
        version=__version__,
        description="Goal-completion analytics for the student tracking dashboard.",
        docs_url="/swagger",
        redoc_url=None,
        dependencies=[Depends(_release_db_conn)],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    if config.auth.enabled and config.auth.api_key:
        app.add_middleware(
            APIKeyAuthMiddleware,
            api_key=config.auth.api_key,
            header_name=config.auth.header_name,
        )
        logger.info("API key auth enabled (header: %s)", config.auth.header_name)

    @app.exception_handler(InputError)
    async def _input_error(request: Request, exc: InputError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(CollaboratorError)
    async def _collaborator_error(request: Request, exc: CollaboratorError):
        logger.warning("Request %s failed on a store read: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Analytics data source unavailable"})

    router = APIRouter()

    from milestone.api.core import register_routes as reg_core
    from milestone.api.analytics import register_routes as reg_analytics

    reg_core(router, svc)
    reg_analytics(router, svc)

    app.include_router(router)
    return app
