# utilities/lifecycle.py
"""
Asset lifecycle engine.

Owns every write to Asset.status and keeps Asset, AssetAssignment and
AssetHistory consistent with each other:

    available -> assigned      issue_asset
    assigned  -> available     return_asset
    available -> scrapped      scrap_asset
    repair    -> scrapped      scrap_asset

Each operation runs inside one session transaction. The status write is a
conditional UPDATE on (status, version), so two requests racing on the same
asset cannot both succeed; the loser gets ConcurrentModificationError and its
transaction is rolled back.

Operations only commit when called with ``commit=True``. Otherwise they run
in a savepoint: on refusal only their own writes are undone, and pending
work the caller added beforehand survives.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from utilities.codes import generate_code
from utilities.database import (
    db,
    Asset,
    AssetAssignment,
    AssetHistory,
    Category,
    Employee,
    RETURN_REASONS,
    utc_now,
)
from utilities.errors import (
    AssetNotFoundError,
    CategoryInUseError,
    CategoryNotFoundError,
    ConcurrentModificationError,
    DuplicateOpenAssignmentError,
    EmployeeNotFoundError,
    EmployeeUnavailableError,
    InvalidTransitionError,
    LifecycleError,
    LifecycleValidationError,
    OpenAssignmentMissingError,
)

logger = logging.getLogger("assetdesk.lifecycle")

ALLOWED_TRANSITIONS = {
    "available": frozenset({"assigned", "repair", "scrapped"}),
    "assigned": frozenset({"available", "repair"}),
    "repair": frozenset({"available", "scrapped"}),
    "scrapped": frozenset(),
}
SCRAPPABLE_STATUSES = ("available", "repair")

PURCHASE_REQUIRED_FIELDS = (
    "serial_number",
    "name",
    "make",
    "model",
    "category_id",
    "branch",
    "purchase_date",
    "purchase_price",
)
EDITABLE_ASSET_FIELDS = (
    "serial_number",
    "name",
    "make",
    "model",
    "category_id",
    "branch",
    "purchase_date",
    "purchase_price",
    "warranty_expiry",
)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@contextmanager
def _saga(operation: str, commit: bool) -> Iterator[None]:
    try:
        if commit:
            yield
            db.session.commit()
        else:
            # Savepoint: a refusal undoes only this operation's writes, not the caller's
            with db.session.begin_nested():
                yield
    except LifecycleError as exc:
        if commit:
            db.session.rollback()
        logger.warning("%s refused: %s", operation, exc)
        raise
    except SQLAlchemyError:
        if commit:
            db.session.rollback()
        logger.exception("%s failed in the store", operation)
        raise


# --- Lookups ---
def get_asset(asset_id: int) -> Asset:
    asset = db.session.get(Asset, asset_id) if asset_id is not None else None
    if asset is None:
        raise AssetNotFoundError(f"Asset {asset_id} not found")
    return asset


def get_employee(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id) if employee_id is not None else None
    if employee is None:
        raise EmployeeNotFoundError(f"Employee {employee_id} not found")
    return employee


def open_assignment(asset_id: int) -> Optional[AssetAssignment]:
    """Return the asset's single open assignment, or None.

    More than one open row is a data integrity bug and is refused.
    """
    rows = (
        AssetAssignment.query
        .filter(AssetAssignment.asset_id == asset_id, AssetAssignment.returned_date.is_(None))
        .order_by(AssetAssignment.id.asc())
        .all()
    )
    if len(rows) > 1:
        raise DuplicateOpenAssignmentError(
            f"Asset {asset_id} has {len(rows)} open assignments"
        )
    return rows[0] if rows else None


def active_asset_count(category_id: int) -> int:
    return (
        Asset.query
        .filter(Asset.category_id == category_id, Asset.status != "scrapped")
        .count()
    )


def _require_status(asset: Asset, allowed, operation: str):
    if asset.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot {operation} asset {asset.asset_code}: status is {asset.status}"
        )


def _compare_and_set_status(asset: Asset, new_status: str, assignee_id: Optional[int]):
    """Write the new status only if the row still matches what we read."""
    expected_status = asset.status
    expected_version = asset.version
    if not can_transition(expected_status, new_status):
        raise InvalidTransitionError(
            f"Asset {asset.asset_code} cannot move from {expected_status} to {new_status}"
        )

    updated = (
        Asset.query
        .filter(
            Asset.id == asset.id,
            Asset.status == expected_status,
            Asset.version == expected_version,
        )
        .update(
            {
                Asset.status: new_status,
                Asset.current_assignee_id: assignee_id,
                Asset.version: expected_version + 1,
                Asset.updated_at: utc_now(),
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise ConcurrentModificationError(
            f"Asset {asset.asset_code} was modified by another request; reload and retry"
        )
    db.session.refresh(asset)


def _append_history(asset_id: int, action: str, *, employee_id=None, notes=None, performed_by=None) -> AssetHistory:
    entry = AssetHistory(
        asset_id=asset_id,
        action=action,
        action_date=utc_now(),
        employee_id=employee_id,
        notes=notes,
        performed_by=performed_by,
    )
    db.session.add(entry)
    return entry


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


# --- Operations ---
def issue_asset(
    asset_id: int,
    employee_id: int,
    notes: Optional[str] = None,
    issued_by: Optional[int] = None,
    *,
    commit: bool = False,
) -> AssetAssignment:
    """Hand an available asset to an active employee."""
    if asset_id is None or employee_id is None:
        raise LifecycleValidationError("Select an asset and an employee.")

    with _saga("issue", commit):
        asset = get_asset(asset_id)
        _require_status(asset, ("available",), "issue")
        employee = get_employee(employee_id)
        if not employee.is_active:
            raise EmployeeUnavailableError(
                f"Employee {employee.employee_code} is inactive and cannot receive assets"
            )
        notes = _clean_notes(notes)

        _compare_and_set_status(asset, "assigned", employee.id)

        assignment = AssetAssignment(
            asset_id=asset.id,
            employee_id=employee.id,
            issued_date=utc_now(),
            issued_by=issued_by,
            notes=notes,
        )
        db.session.add(assignment)
        _append_history(
            asset.id,
            "issued",
            employee_id=employee.id,
            notes=notes,
            performed_by=issued_by,
        )

    logger.info("Issued asset %s to employee %s", asset.asset_code, employee.employee_code)
    return assignment


def compose_return_notes(return_reason: str, notes: Optional[str]) -> str:
    return f"Return reason: {return_reason}. {notes or ''}".strip()


def return_asset(
    asset_id: int,
    return_reason: str,
    notes: Optional[str] = None,
    returned_by: Optional[int] = None,
    *,
    commit: bool = False,
) -> AssetAssignment:
    """Take an assigned asset back and close its open assignment."""
    if asset_id is None:
        raise LifecycleValidationError("Select an asset to return.")
    if return_reason not in RETURN_REASONS:
        raise LifecycleValidationError(
            f"Return reason must be one of: {', '.join(RETURN_REASONS)}"
        )

    with _saga("return", commit):
        asset = get_asset(asset_id)
        _require_status(asset, ("assigned",), "return")

        # Resolved before any write so an inconsistent asset is left untouched
        assignment = open_assignment(asset.id)
        if assignment is None:
            raise OpenAssignmentMissingError(
                f"Asset {asset.asset_code} is assigned but has no open assignment"
            )
        notes = _clean_notes(notes)

        _compare_and_set_status(asset, "available", None)

        assignment.returned_date = utc_now()
        assignment.return_reason = return_reason
        assignment.returned_by = returned_by
        if notes is not None:
            assignment.notes = notes

        _append_history(
            asset.id,
            "returned",
            employee_id=assignment.employee_id,
            notes=compose_return_notes(return_reason, notes),
            performed_by=returned_by,
        )

    logger.info("Returned asset %s (%s)", asset.asset_code, return_reason)
    return assignment


def scrap_asset(
    asset_id: int,
    notes: Optional[str] = None,
    performed_by: Optional[int] = None,
    *,
    commit: bool = False,
) -> Asset:
    """Retire an available or in-repair asset for good."""
    if asset_id is None:
        raise LifecycleValidationError("Select an asset to scrap.")

    with _saga("scrap", commit):
        asset = get_asset(asset_id)
        _require_status(asset, SCRAPPABLE_STATUSES, "scrap")
        notes = _clean_notes(notes)

        _compare_and_set_status(asset, "scrapped", None)
        _append_history(asset.id, "scrapped", notes=notes, performed_by=performed_by)

    logger.info("Scrapped asset %s", asset.asset_code)
    return asset


# --- Purchase / descriptive edits ---
def parse_date(value: Any, field: str, required: bool = True) -> Optional[date]:
    if value is None or value == "":
        if required:
            raise LifecycleValidationError(f"{field} is required.")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise LifecycleValidationError(f"{field} must be a date in YYYY-MM-DD format.")


def parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise LifecycleValidationError("purchase_price must be a number.")
    if not price.is_finite() or price < 0:
        raise LifecycleValidationError("purchase_price must be zero or more.")
    return price.quantize(Decimal("0.01"))


def _get_category(category_id: Any) -> Category:
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        raise LifecycleValidationError("category_id must be an integer.")
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError(f"Category {category_id} not found")
    return category


def _clean_asset_fields(fields: Dict[str, Any], required) -> Dict[str, Any]:
    missing = [
        name for name in required
        if fields.get(name) is None or (isinstance(fields.get(name), str) and not fields[name].strip())
    ]
    if missing:
        raise LifecycleValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: Dict[str, Any] = {}
    for name in EDITABLE_ASSET_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "category_id":
            cleaned[name] = _get_category(value).id
        elif name == "purchase_date":
            cleaned[name] = parse_date(value, name)
        elif name == "warranty_expiry":
            cleaned[name] = parse_date(value, name, required=False)
        elif name == "purchase_price":
            cleaned[name] = parse_price(value)
        else:
            value = str(value).strip()
            if not value:
                raise LifecycleValidationError(f"{name} cannot be empty.")
            cleaned[name] = value
    return cleaned


def purchase_asset(fields: Dict[str, Any], performed_by: Optional[int] = None, *, commit: bool = False) -> Asset:
    """Register a newly bought asset as available and log the purchase."""
    with _saga("purchase", commit):
        cleaned = _clean_asset_fields(fields, PURCHASE_REQUIRED_FIELDS)
        asset = Asset(
            asset_code=generate_code("asset"),
            status="available",
            current_assignee_id=None,
            version=1,
            **cleaned,
        )
        db.session.add(asset)
        db.session.flush()
        _append_history(asset.id, "purchased", notes="Initial purchase", performed_by=performed_by)

    logger.info("Purchased asset %s (%s)", asset.asset_code, asset.name)
    return asset


def update_asset_details(asset_id: int, fields: Dict[str, Any], *, commit: bool = False) -> Asset:
    """Edit descriptive fields. Status and holder are owned by the lifecycle operations."""
    protected = {"status", "current_assignee_id", "version", "asset_code"} & set(fields)
    if protected:
        raise LifecycleValidationError(
            f"Fields cannot be edited directly: {', '.join(sorted(protected))}"
        )

    with _saga("update", commit):
        asset = get_asset(asset_id)
        if asset.status == "scrapped":
            raise InvalidTransitionError(f"Asset {asset.asset_code} is scrapped and read-only")
        for name, value in _clean_asset_fields(fields, ()).items():
            setattr(asset, name, value)
    return asset


# --- Categories ---
def delete_category(category_id: int, *, commit: bool = False) -> Category:
    """Delete a category nobody uses; refused while non-scrapped assets reference it."""
    with _saga("delete_category", commit):
        category = db.session.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        count = active_asset_count(category.id)
        if count > 0:
            raise CategoryInUseError(
                f"Cannot delete category with {count} active asset{'s' if count != 1 else ''}"
            )
        # Scrapped assets keep their ledger but lose the category link
        Asset.query.filter(Asset.category_id == category.id).update(
            # updated_at doubles as the scrap date, so the onupdate hook must not fire
            {Asset.category_id: None, Asset.updated_at: Asset.updated_at},
            synchronize_session=False,
        )
        db.session.delete(category)

    logger.info("Deleted category %s", category.name)
    return category
