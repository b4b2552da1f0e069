"""
Admin dashboard aggregates.

All day and month boundaries are UTC. Daily buckets are keyed by the UTC
calendar date (YYYY-MM-DD) of the order's created_at.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, Query

from auth import require_admin
from database import as_utc, get_db, utcnow

RANGES = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE = "30d"

router = APIRouter(prefix="/admin/stats", tags=["stats"])


def range_days(value: Optional[str]) -> int:
    return RANGES.get(str(value or DEFAULT_RANGE).strip().lower(), RANGES[DEFAULT_RANGE])


def month_start(moment: datetime, months_back: int = 0) -> datetime:
    year, month = divmod(moment.year * 12 + moment.month - 1 - months_back, 12)
    return datetime(year, month + 1, 1, tzinfo=timezone.utc)


def _created(order: dict) -> Optional[datetime]:
    value = order.get("created_at")
    return as_utc(value) if isinstance(value, datetime) else None


def _amount(order: dict) -> float:
    return float(order.get("total") or 0)


def summarize(orders: Iterable[dict], start: datetime, end: datetime) -> dict:
    """Revenue and count for orders created in [start, end)."""
    revenue, count = 0.0, 0
    for order in orders:
        created = _created(order)
        if created is not None and start <= created < end:
            revenue += _amount(order)
            count += 1
    return {"revenue": round(revenue, 2), "orders": count}


def daily_series(orders: Iterable[dict], days: int, now: datetime) -> list:
    today = as_utc(now).date()
    first = today - timedelta(days=days - 1)
    buckets = {}
    for offset in range(days):
        key = (first + timedelta(days=offset)).isoformat()
        buckets[key] = {"date": key, "revenue": 0.0, "orders": 0}
    for order in orders:
        created = _created(order)
        if created is None:
            continue
        bucket = buckets.get(created.date().isoformat())
        if bucket is not None:
            bucket["revenue"] += _amount(order)
            bucket["orders"] += 1
    series = [buckets[key] for key in sorted(buckets)]
    for point in series:
        point["revenue"] = round(point["revenue"], 2)
    return series


def window_start(now: datetime, days: int) -> datetime:
    """Earliest instant reached by the daily series or the month summaries."""
    now = as_utc(now)
    first = now.date() - timedelta(days=days - 1)
    series_start = datetime(first.year, first.month, first.day, tzinfo=timezone.utc)
    return min(series_start, month_start(now, 2))


def order_totals(db) -> dict:
    grouped = list(db["order"].aggregate([{"$group": {"_id": None, "revenue": {"$sum": "$total"}}}]))
    revenue = grouped[0]["revenue"] if grouped else 0
    return {"revenue": round(float(revenue or 0), 2), "orders": db["order"].count_documents({})}


def build_overview(orders, now: datetime, days: int, totals: dict) -> dict:
    """Month summaries and the daily series from `orders`; lifetime `totals` are passed in."""
    orders = list(orders)
    now = as_utc(now)
    this_month = month_start(now)
    last_month = month_start(now, 1)
    prev_month = month_start(now, 2)
    return {
        "range": f"{days}d",
        "totals": totals,
        "thisMonth": summarize(orders, this_month, month_start(now, -1)),
        "lastMonth": summarize(orders, last_month, this_month),
        "prevMonth": summarize(orders, prev_month, last_month),
        "series": daily_series(orders, days, now),
    }


@router.get("/overview")
def stats_overview(window: str = Query(DEFAULT_RANGE, alias="range"), db=Depends(get_db), admin=Depends(require_admin)):
    # Read-time snapshot; orders created mid-read may or may not be counted.
    now = utcnow()
    days = range_days(window)
    # naive UTC, matching how pymongo stores and compares datetimes
    since = window_start(now, days).replace(tzinfo=None)
    recent = db["order"].find({"created_at": {"$gte": since}}, {"total": 1, "created_at": 1})
    totals = order_totals(db)
    totals["users"] = db["user"].count_documents({})
    return {"ok": True, "data": build_overview(recent, now, days, totals)}
