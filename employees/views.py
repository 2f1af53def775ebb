# employees/views.py
from typing import Optional

from flask import Blueprint, jsonify, request, abort, current_app
from flask_login import login_required, current_user

from utilities.codes import generate_code
from utilities.database import db, Employee, AssetAssignment, log_activity
from utilities.view_helpers import request_data, clean_str, json_error

employees_bp = Blueprint("employees", __name__)

REQUIRED_FIELDS = ("first_name", "last_name", "email", "department", "designation", "branch")
EDITABLE_FIELDS = REQUIRED_FIELDS + ("is_active",)


def _get_employee_or_404(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        abort(404)
    return employee


def _parse_bool(value) -> Optional[bool]:
    """True/False for recognised flags, None for anything else (null included)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on", "active"}:
        return True
    if text in {"0", "false", "no", "off", "inactive"}:
        return False
    return None


def _validate(data: dict, *, partial: bool, employee_id: int = 0) -> dict:
    errors = {}
    for field in REQUIRED_FIELDS:
        if partial and field not in data:
            continue
        if not clean_str(data.get(field)):
            errors[field] = f"{field.replace('_', ' ').capitalize()} is required."

    branch = clean_str(data.get("branch"))
    if branch and branch not in current_app.config["BRANCHES"]:
        errors["branch"] = "Select a valid branch."
    department = clean_str(data.get("department"))
    if department and department not in current_app.config["DEPARTMENTS"]:
        errors["department"] = "Select a valid department."

    email = clean_str(data.get("email"))
    if email and Employee.query.filter(
        db.func.lower(Employee.email) == email.lower(),
        Employee.id != employee_id,
    ).first():
        errors["email"] = "Email already exists."

    if "is_active" in data and _parse_bool(data["is_active"]) is None:
        errors["is_active"] = "Active flag must be true or false."
    return errors


@employees_bp.get("/")
@login_required
def list_employees():
    q = (request.args.get("q") or "").strip()
    department = (request.args.get("department") or "").strip()
    status = (request.args.get("status") or "").strip().lower()

    query = Employee.query
    if q:
        like = f"%{q}%"
        query = query.filter(
            db.or_(
                Employee.employee_code.ilike(like),
                Employee.first_name.ilike(like),
                Employee.last_name.ilike(like),
                Employee.email.ilike(like),
            )
        )
    if department and department != "all":
        query = query.filter(Employee.department == department)
    if status == "active":
        query = query.filter(Employee.is_active.is_(True))
    elif status == "inactive":
        query = query.filter(Employee.is_active.is_(False))

    employees = query.order_by(Employee.first_name.asc(), Employee.last_name.asc()).all()
    return jsonify([e.to_dict() for e in employees])


@employees_bp.get("/<int:employee_id>")
@login_required
def get_employee(employee_id: int):
    employee = _get_employee_or_404(employee_id)
    payload = employee.to_dict()
    payload["assignments"] = [
        a.to_dict()
        for a in AssetAssignment.query.filter_by(employee_id=employee.id)
        .order_by(AssetAssignment.issued_date.desc())
        .all()
    ]
    return jsonify(payload)


@employees_bp.post("/")
@login_required
def create_employee():
    data = request_data()
    errors = _validate(data, partial=False)
    if errors:
        return json_error("Invalid employee details.", 400, errors=errors)

    employee = Employee(
        employee_code=generate_code("employee"),
        first_name=clean_str(data["first_name"]),
        last_name=clean_str(data["last_name"]),
        email=clean_str(data["email"]),
        department=clean_str(data["department"]),
        designation=clean_str(data["designation"]),
        branch=clean_str(data["branch"]),
        is_active=True,
    )
    db.session.add(employee)
    db.session.flush()
    log_activity(
        "employee_created",
        user=current_user,
        target=employee,
        summary=f"Created employee {employee.employee_code} {employee.full_name}",
    )
    db.session.commit()
    return jsonify({"success": True, "employee": employee.to_dict()}), 201


@employees_bp.route("/<int:employee_id>", methods=["PUT", "PATCH"])
@login_required
def update_employee(employee_id: int):
    employee = _get_employee_or_404(employee_id)
    data = request_data()
    errors = _validate(data, partial=True, employee_id=employee.id)
    if errors:
        return json_error("Invalid employee details.", 400, errors=errors)

    changes = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        new_value = _parse_bool(data[field]) if field == "is_active" else clean_str(data[field])
        old_value = getattr(employee, field)
        if new_value != old_value:
            changes[field] = {"from": old_value, "to": new_value}
            setattr(employee, field, new_value)

    if changes:
        log_activity(
            "employee_updated",
            user=current_user,
            target=employee,
            summary=f"Updated employee {employee.employee_code}",
            meta={"changes": changes},
        )
    db.session.commit()
    return jsonify({"success": True, "employee": employee.to_dict()})
