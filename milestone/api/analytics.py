"""Analytics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from milestone.api.utils import parse_histogram_buckets
from milestone.core.analytics import resolve_range
from milestone.core.buckets import Granularity
from milestone.core.services import Services


def register_routes(router: APIRouter, svc: Services, **kw):
    analytics_engine = svc.analytics_engine
    default_days = svc.config.analytics.default_range_days

    @router.get("/analytics/overview")
    def api_analytics_overview():
        return analytics_engine.overview()

    @router.get("/analytics/completions")
    def api_analytics_completions(
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        group_by: str = Query("week"),
    ):
        granularity = Granularity.parse(group_by)
        start, end = resolve_range(start_date, end_date, default_days)
        return analytics_engine.completions(start, end, granularity)

    @router.get("/analytics/throughput")
    def api_analytics_throughput(
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        group_by: str = Query("month"),
    ):
        granularity = Granularity.parse(group_by)
        start, end = resolve_range(start_date, end_date, default_days)
        series = analytics_engine.throughput(start, end, granularity)
        return [p.to_dict() for p in series]

    @router.get("/analytics/time-to-complete")
    def api_analytics_time_to_complete(
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        buckets: str | None = Query(None, description="JSON list of {key, min, max}"),
    ):
        hist_buckets = parse_histogram_buckets(buckets)
        start, end = resolve_range(start_date, end_date, default_days)
        return analytics_engine.time_to_complete(start, end, hist_buckets).to_dict()

    @router.get("/analytics/backlog")
    def api_analytics_backlog(
        as_of: str | None = Query(None),
        top_n: str | None = Query(None),
    ):
        return analytics_engine.backlog(as_of=as_of, top_n=top_n).to_dict()

    @router.get("/analytics/overdue")
    def api_analytics_overdue(
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        as_of: str | None = Query(None),
    ):
        return analytics_engine.overdue(start_date=start_date, end_date=end_date, as_of=as_of)

    @router.get("/analytics/by-student")
    def api_analytics_by_student(
        start_date: str | None = Query(None),
        end_date: str | None = Query(None),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        return analytics_engine.by_student(
            start_date=start_date, end_date=end_date, limit=limit, offset=offset,
        )
