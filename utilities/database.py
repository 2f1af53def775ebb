# utilities/database.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, UTC
from typing import Any, Dict, Optional, Union

db = SQLAlchemy()

ASSET_STATUSES = ("available", "assigned", "repair", "scrapped")
HISTORY_ACTIONS = ("purchased", "issued", "returned", "repair", "scrapped")
RETURN_REASONS = ("upgrade", "repair", "resignation", "transfer", "other")


def utc_now() -> datetime:
    """Return a naive UTC datetime without relying on deprecated utcnow()."""
    return datetime.now(UTC).replace(tzinfo=None)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class Category(db.Model):
    __tablename__ = "asset_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    assets = db.relationship("Asset", back_populates="category")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": _iso(self.created_at),
        }


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    employee_code = db.Column(db.String(20), unique=True, nullable=False, index=True)  # e.g., "EMP-00042"
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    department = db.Column(db.String(120), nullable=False)
    designation = db.Column(db.String(120), nullable=False)
    branch = db.Column(db.String(120), nullable=False)
    # Departed employees are deactivated, never deleted, so history stays resolvable
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_code": self.employee_code,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "department": self.department,
            "designation": self.designation,
            "branch": self.branch,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Asset(db.Model):
    __tablename__ = "assets"

    id = db.Column(db.Integer, primary_key=True)
    asset_code = db.Column(db.String(20), unique=True, nullable=False, index=True)  # e.g., "AST-00017"
    serial_number = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    make = db.Column(db.String(120), nullable=False)
    model = db.Column(db.String(120), nullable=False)
    # Required on purchase; cleared only when the category of a scrapped asset is deleted
    category_id = db.Column(db.Integer, db.ForeignKey("asset_categories.id", ondelete="SET NULL"), nullable=True, index=True)
    branch = db.Column(db.String(120), nullable=False)
    purchase_date = db.Column(db.Date, nullable=False)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    warranty_expiry = db.Column(db.Date, nullable=True)

    # available|assigned|repair|scrapped, only mutated by utilities.lifecycle
    status = db.Column(db.String(20), nullable=False, default="available", index=True)
    current_assignee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    # Bumped on every status write; lifecycle updates are conditional on it
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    category = db.relationship("Category", back_populates="assets")
    current_assignee = db.relationship("Employee", foreign_keys=[current_assignee_id])
    assignments = db.relationship(
        "AssetAssignment",
        back_populates="asset",
        order_by="AssetAssignment.issued_date.desc()",
    )
    history = db.relationship(
        "AssetHistory",
        back_populates="asset",
        order_by="AssetHistory.id",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_code": self.asset_code,
            "serial_number": self.serial_number,
            "name": self.name,
            "make": self.make,
            "model": self.model,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "branch": self.branch,
            "purchase_date": _iso(self.purchase_date),
            "purchase_price": float(self.purchase_price) if self.purchase_price is not None else 0.0,
            "warranty_expiry": _iso(self.warranty_expiry),
            "status": self.status,
            "current_assignee_id": self.current_assignee_id,
            "current_assignee_name": self.current_assignee.full_name if self.current_assignee else None,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AssetAssignment(db.Model):
    """One asset held by one employee; open while returned_date is NULL."""
    __tablename__ = "asset_assignments"

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    issued_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    issued_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    returned_date = db.Column(db.DateTime, nullable=True)  # NULL while the asset is still held
    return_reason = db.Column(db.String(20), nullable=True)  # upgrade|repair|resignation|transfer|other
    returned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    asset = db.relationship("Asset", back_populates="assignments")
    employee = db.relationship("Employee")

    @property
    def is_open(self) -> bool:
        return self.returned_date is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "asset_code": self.asset.asset_code if self.asset else None,
            "employee_id": self.employee_id,
            "employee_name": self.employee.full_name if self.employee else None,
            "issued_date": _iso(self.issued_date),
            "issued_by": self.issued_by,
            "notes": self.notes,
            "returned_date": _iso(self.returned_date),
            "return_reason": self.return_reason,
            "returned_by": self.returned_by,
        }


class AssetHistory(db.Model):
    """Append-only lifecycle ledger. Rows are never updated or deleted."""
    __tablename__ = "asset_history"

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    action = db.Column(db.String(20), nullable=False)  # purchased|issued|returned|repair|scrapped
    action_date = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    asset = db.relationship("Asset", back_populates="history")
    employee = db.relationship("Employee")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "action": self.action,
            "action_date": _iso(self.action_date),
            "employee_id": self.employee_id,
            "employee_name": self.employee.full_name if self.employee else None,
            "notes": self.notes,
            "performed_by": self.performed_by,
        }


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="user")  # e.g., "admin", "user"
    pin_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=db.func.now(), onupdate=db.func.now())

    def set_pin(self, raw_pin: str):
        self.pin_hash = generate_password_hash(raw_pin)

    def check_pin(self, raw_pin: str) -> bool:
        return check_password_hash(self.pin_hash, raw_pin)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    action = db.Column(db.String(120), nullable=False)
    target_type = db.Column(db.String(120), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    summary = db.Column(db.String(255), nullable=True)
    meta = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "user_id": self.user_id,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "summary": self.summary,
            "meta": self.meta,
        }


def log_activity(
    action: str,
    *,
    user: Optional[Union[User, int]] = None,
    target: Optional[Any] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    summary: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
    commit: bool = False,
) -> ActivityLog:
    """Persist a structured audit trail entry for administrative changes."""
    entry = ActivityLog(
        action=action,
        user_id=_extract_id(user),
        target_type=target_type or _extract_target_type(target),
        target_id=target_id or _extract_id(target),
        summary=summary,
        meta=meta or None,
    )
    db.session.add(entry)

    if commit:
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    return entry


def _extract_id(candidate: Optional[Any]) -> Optional[int]:
    if candidate is None:
        return None
    if isinstance(candidate, int):
        return candidate
    return getattr(candidate, "id", None)


def _extract_target_type(target: Optional[Any]) -> Optional[str]:
    if target is None:
        return None
    return target.__class__.__name__
