"""Service container and factory. Centralizes component initialization."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from milestone.config import Config, load_config
from milestone.core.analytics import AnalyticsQueryEngine
from milestone.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Holds all initialized Milestone components."""

    config: Config
    db: Database
    analytics_engine: AnalyticsQueryEngine


def create_services(config: Config | None = None, db: Database | None = None) -> Services:
    """Build all services from config.

    Args:
        config: Configuration to use. Loads from env if None.
        db: Pre-connected database. Creates new one if None.
    """
    if config is None:
        config = load_config()

    if db is None:
        db = Database(config.db)

    analytics_engine = AnalyticsQueryEngine(db, analytics_config=config.analytics)
    logger.info(
        "Analytics ready (default range=%dd, query workers=%d)",
        config.analytics.default_range_days, config.analytics.query_workers,
    )

    return Services(config=config, db=db, analytics_engine=analytics_engine)
