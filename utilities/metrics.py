# utilities/metrics.py
"""
Derived metrics over already-fetched snapshots.

Pure functions: they take model instances (or anything exposing the same
attributes) and never touch the session.
"""
import math
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Sequence

from utilities.database import utc_now

# Share of an asset's age counted as "assigned", keyed by current status.
UTILIZATION_FACTORS = {
    "assigned": 0.8,
    "scrapped": 0.6,
}
DEFAULT_UTILIZATION_FACTOR = 0.3
HIGH_UTILIZATION = 70
LOW_UTILIZATION = 30
STOCK_STATUSES = ("available", "assigned", "repair")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _price(asset: Any) -> float:
    value = getattr(asset, "purchase_price", None)
    return float(value) if value is not None else 0.0


def _to_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return datetime.strptime(str(value)[:10], "%Y-%m-%d")


def asset_age_days(purchase_date, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since purchase, floored."""
    now = _to_datetime(now) if now is not None else utc_now()
    seconds = (now - _to_datetime(purchase_date)).total_seconds()
    return math.floor(seconds / 86400)


def utilization_estimate(asset: Any, now: Optional[datetime] = None) -> Dict[str, int]:
    """Estimate how much of its life an asset has spent assigned.

    This is a status-keyed fraction of the asset's age, not a sum over its
    assignment intervals. Rate is 0 for assets bought today.
    """
    total_days = asset_age_days(asset.purchase_date, now)
    factor = UTILIZATION_FACTORS.get(asset.status, DEFAULT_UTILIZATION_FACTOR)
    assigned_days = math.floor(total_days * factor)
    rate = _round_half_up(assigned_days / total_days * 100) if total_days > 0 else 0
    return {
        "total_days": total_days,
        "assigned_days": assigned_days,
        "utilization_rate": rate,
    }


def _category_names(categories: Iterable[Any]) -> Dict[Any, str]:
    return {c.id: c.name for c in categories}


def utilization_report_rows(
    assets: Iterable[Any],
    categories: Iterable[Any],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    names = _category_names(categories)
    rows = []
    for asset in assets:
        estimate = utilization_estimate(asset, now)
        rows.append({
            "id": asset.id,
            "asset_code": asset.asset_code,
            "name": asset.name,
            "category": names.get(asset.category_id, "Unknown"),
            "purchase_date": _to_datetime(asset.purchase_date).date().isoformat(),
            "purchase_price": _price(asset),
            "status": asset.status,
            **estimate,
        })
    return rows


def utilization_summary(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    count = len(rows)
    average = _round_half_up(sum(r["utilization_rate"] for r in rows) / count) if count else 0
    return {
        "total_assets": count,
        "total_value": sum(r["purchase_price"] for r in rows),
        "average_utilization": average,
        "high_utilization": sum(1 for r in rows if r["utilization_rate"] >= HIGH_UTILIZATION),
        "low_utilization": sum(1 for r in rows if r["utilization_rate"] < LOW_UTILIZATION),
    }


def stock_summary(
    assets: Iterable[Any],
    branches: Sequence[str],
    categories: Sequence[Any],
    *,
    branch: Optional[str] = None,
    category_id: Optional[int] = None,
    non_empty_only: bool = False,
) -> Dict[str, Any]:
    """Counts and value per (branch, category), scrapped assets excluded.

    Assets whose branch or category is not in the given lists are ignored.
    """
    cells: Dict[tuple, Dict[str, Any]] = {}
    for b in branches:
        for cat in categories:
            cells[(b, cat.id)] = {
                "branch": b,
                "category_id": cat.id,
                "category": cat.name,
                "available": 0,
                "assigned": 0,
                "repair": 0,
                "value": 0.0,
            }

    for asset in assets:
        if asset.status == "scrapped":
            continue
        cell = cells.get((asset.branch, asset.category_id))
        if cell is None:
            continue
        if asset.status in STOCK_STATUSES:
            cell[asset.status] += 1
        cell["value"] += _price(asset)

    selected_branches = [b for b in branches if branch in (None, "", "all") or b == branch]
    selected_categories = [
        c for c in categories if category_id in (None, "", "all") or c.id == category_id
    ]

    rows = []
    totals = {"available": 0, "assigned": 0, "repair": 0, "value": 0.0}
    for b in selected_branches:
        for cat in selected_categories:
            cell = cells[(b, cat.id)]
            for key in totals:
                totals[key] += cell[key]
            if non_empty_only and not (cell["available"] or cell["assigned"] or cell["repair"]):
                continue
            rows.append(dict(cell))
    return {"rows": rows, "totals": totals}


def dashboard_stats(assets: Iterable[Any], employees: Iterable[Any]) -> Dict[str, Any]:
    assets = list(assets)
    live = [a for a in assets if a.status != "scrapped"]
    return {
        "total_assets": len(live),
        "available_assets": sum(1 for a in assets if a.status == "available"),
        "assigned_assets": sum(1 for a in assets if a.status == "assigned"),
        "repair_assets": sum(1 for a in assets if a.status == "repair"),
        "active_employees": sum(1 for e in employees if e.is_active),
        "total_value": sum(_price(a) for a in live),
    }


def stock_by_branch(assets: Iterable[Any], branches: Sequence[str]) -> List[Dict[str, Any]]:
    live = [a for a in assets if a.status != "scrapped"]
    result = []
    for b in branches:
        branch_assets = [a for a in live if a.branch == b]
        result.append({
            "branch": b,
            "total": len(branch_assets),
            "available": sum(1 for a in branch_assets if a.status == "available"),
            "assigned": sum(1 for a in branch_assets if a.status == "assigned"),
            "value": sum(_price(a) for a in branch_assets),
        })
    return result


def recent_assets(assets: Iterable[Any], limit: int = 5) -> List[Any]:
    live = [a for a in assets if a.status != "scrapped"]
    live.sort(key=lambda a: a.created_at, reverse=True)
    return live[:limit]


def scrapped_summary(assets: Iterable[Any]) -> Dict[str, Any]:
    scrapped = [a for a in assets if a.status == "scrapped"]
    return {
        "total_scrapped": len(scrapped),
        "total_original_value": sum(_price(a) for a in scrapped),
    }
