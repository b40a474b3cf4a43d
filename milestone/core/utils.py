"""Shared utilities for Milestone core modules. Error types, date parsing, parallel reads."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from milestone.storage.database import Database

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


class InputError(ValueError):
    """Raised when analytics input is malformed or semantically invalid."""


class CollaboratorError(RuntimeError):
    """Raised when a backing-store read fails or times out.

    One of these fails the whole analytics request; partial results are
    never returned.
    """


def parse_date(value: date | str | None, name: str = "date") -> date | None:
    """Coerce a YYYY-MM-DD string (or date/datetime) to a date. None passes through.

    Strings must be exactly YYYY-MM-DD; longer input is rejected, not truncated.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not _DATE_RE.fullmatch(text):
        raise InputError(f"{name} must be a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InputError(f"{name} must be a YYYY-MM-DD date, got {value!r}") from None


def validate_range(start_date: date | None, end_date: date | None) -> None:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise InputError(f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}")


def run_parallel(
    db: Database,
    calls: dict[str, Callable[[], Any]],
    max_workers: int = 5,
) -> dict[str, Any]:
    """Run independent read-only calls on a thread pool and wait for all of them.

    Each call runs on its own worker thread, so it checks out its own pooled
    connection; the connection goes back to the pool when the call finishes.
    The first failure is re-raised (as CollaboratorError unless it already is
    an InputError/CollaboratorError) after every call has settled.
    """
    if not calls:
        return {}

    def _wrapped(fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        finally:
            db.release_if_held()

    results: dict[str, Any] = {}
    failure: tuple[str, BaseException] | None = None
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(calls)))) as pool:
        futures = {pool.submit(_wrapped, fn): name for name, fn in calls.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except Exception as e:
                if failure is None:
                    failure = (name, e)

    if failure is not None:
        name, exc = failure
        if isinstance(exc, (InputError, CollaboratorError)):
            raise exc
        logger.error("Parallel read '%s' failed: %s", name, exc)
        raise CollaboratorError(f"read '{name}' failed: {exc}") from exc
    return results
