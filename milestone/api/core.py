"""Core endpoints — status, settings."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from milestone import __version__
from milestone.config import config_to_flat
from milestone.core.services import Services

logger = logging.getLogger(__name__)


def register_routes(router: APIRouter, svc: Services, **kw):
    config = svc.config

    @router.get("/status")
    def api_status():
        return {"status": "ok", "version": __version__}

    @router.get("/settings")
    def api_settings():
        return {"values": config_to_flat(config)}
