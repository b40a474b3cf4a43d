"""Shared fixtures for Milestone tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest


def _make_db(handler=None):
    db = MagicMock()
    if handler is not None:
        db.execute.side_effect = handler
    else:
        db.execute.return_value = []
    return db


@pytest.fixture
def make_db():
    """Factory for a MagicMock database whose execute() answers via handler(sql, params).

    Analytics fan reads out to worker threads, so handlers should key their
    responses on the SQL text rather than on call order.
    """
    return _make_db


@pytest.fixture
def db():
    return _make_db()
