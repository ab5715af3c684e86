"""Chart-ready buckets for the admin analytics page."""
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

RANGES = {"7d": 7, "30d": 30, "90d": 90}
TOP_STATES = 10


def _field(row, name):
    return row.get(name) if isinstance(row, dict) else getattr(row, name, None)


def _as_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    return None


def day_label(d: date) -> str:
    return f"{d:%b} {d.day}"


def count_by(rows: Iterable, field: str, limit: Optional[int] = None) -> List[dict]:
    # first-seen order
    counts = {}
    for row in rows:
        key = _field(row, field) or "Unknown"
        counts[key] = counts.get(key, 0) + 1
    buckets = [{"key": key, "count": count} for key, count in counts.items()]
    return buckets[:limit] if limit else buckets


def daily_trend(rows: Iterable, range_: str = "30d", date_field: str = "created_at",
                today: Optional[date] = None) -> List[dict]:
    days = RANGES.get(range_, 90)
    today = today or date.today()
    per_day = {}
    for row in rows:
        d = _as_date(_field(row, date_field))
        if d is not None:
            per_day[d] = per_day.get(d, 0) + 1
    return [
        {"date": day_label(d), "count": per_day.get(d, 0)}
        for d in (today - timedelta(days=i) for i in range(days - 1, -1, -1))
    ]


def shipment_analytics(rows: List, range_: str = "30d", today: Optional[date] = None) -> dict:
    states = [r for r in rows if _field(r, "destination_state")]
    delivered = [r for r in rows if _field(r, "status") == "delivered" and _field(r, "actual_delivery")]
    return {
        "total": len(rows),
        "by_status": count_by(rows, "status"),
        "by_state": count_by(states, "destination_state", limit=TOP_STATES),
        "daily_delivered": daily_trend(delivered, range_, "actual_delivery", today),
    }


def lead_analytics(rows: List, range_: str = "30d", today: Optional[date] = None,
                   with_source: bool = True) -> dict:
    result = {
        "total": len(rows),
        "by_status": count_by(rows, "status"),
        "daily_trend": daily_trend(rows, range_, "created_at", today),
    }
    if with_source:
        result["by_source"] = count_by(rows, "source")
    return result
