"""Milestone HTTP server. Entry point for the analytics API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from milestone.api import create_api
from milestone.config import load_config
from milestone.core.services import create_services
from milestone.storage.database import Database

logger = logging.getLogger("milestone")


def build_app() -> tuple[FastAPI, dict]:
    """Connect the database, build services and return the root app plus uvicorn settings."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    db = Database(config.db)
    db.connect()
    db.run_migrations()
    svc = create_services(config=config, db=db)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Milestone started (API at /api)")
        try:
            yield
        finally:
            db.close()
            logger.info("Milestone stopped.")

    root = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    root.mount("/api", create_api(svc))
    return root, {"host": config.http_host, "port": config.http_port}


def main():
    """Run the Milestone API server."""
    import uvicorn

    app, settings = build_app()
    logger.info("Starting Milestone (HTTP on %s:%d)", settings["host"], settings["port"])
    uvicorn.run(app, host=settings["host"], port=settings["port"])


if __name__ == "__main__":
    main()
