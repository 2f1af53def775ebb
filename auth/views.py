from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from typing import Dict, Optional
from utilities.database import db, User, log_activity
from utilities.security import limiter, LOGIN_RATE_LIMIT
from utilities.view_helpers import request_data, json_error, require_admin

auth_bp = Blueprint("auth", __name__)
ALLOWED_ROLES = ["admin", "user"]


def _clean_pin(pin: Optional[str]) -> Optional[str]:
    if pin is None:
        return None
    pin = str(pin).strip()
    return pin or None


def _validate_user_fields(
    *,
    name: str,
    email: str,
    pin: Optional[str],
    role: Optional[str] = None,
    require_pin: bool = False,
    user_id: Optional[int] = None,
) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    if not name:
        errors["name"] = "Name is required."
    if not email:
        errors["email"] = "Email is required."

    normalized_pin = _clean_pin(pin)
    if require_pin and not normalized_pin:
        errors["pin"] = "PIN is required."
    elif normalized_pin and (len(normalized_pin) < 4 or not normalized_pin.isdigit()):
        errors["pin"] = "PIN must be numeric and at least 4 digits."

    if role is not None and role.lower() not in ALLOWED_ROLES:
        errors["role"] = "Select a valid role."

    if email:
        existing_email = User.query.filter(
            db.func.lower(User.email) == email.lower(),
            User.id != (user_id or 0),
        ).first()
        if existing_email:
            errors["email"] = "Email already exists."

    if name:
        existing_name = User.query.filter(
            db.func.lower(User.name) == name.lower(),
            User.id != (user_id or 0),
        ).first()
        if existing_name:
            errors["name"] = "Name already exists."

    return errors


@auth_bp.get("/login")
def login():
    if current_user.is_authenticated:
        return jsonify({"authenticated": True, "user": current_user.to_dict()})
    return jsonify({"authenticated": False, "message": "Enter your PIN."})


@auth_bp.get("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on POST/PUT/PATCH/DELETE requests."""
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.post("/login")
@limiter.limit(LOGIN_RATE_LIMIT)
def login_post():
    data = request_data()
    pin = _clean_pin(data.get("pin"))
    remember = bool(data.get("remember", False))

    if not pin:
        return json_error("Enter your PIN.")

    # PINs are hashed, so every active user has to be checked
    candidates = [u for u in User.query.filter_by(is_active=True).all() if u.check_pin(pin)]

    if not candidates:
        return json_error("Invalid PIN.", 401)
    if len(candidates) > 1:
        return json_error("PIN is not unique. Ask an admin to assign a unique PIN.", 409)

    user = candidates[0]
    login_user(user, remember=remember)
    log_activity(
        "auth_login",
        user=user,
        summary="User signed in",
        meta={"remember": remember},
        commit=True,
    )
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/logout", methods=["GET", "POST"])
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    log_activity("auth_logout", user=user_id, summary="User signed out", commit=True)
    return jsonify({"success": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.get("/users")
@login_required
def list_users():
    require_admin()
    users = User.query.order_by(User.name.asc()).all()
    return jsonify([u.to_dict() for u in users])


@auth_bp.post("/users")
@login_required
def create_user():
    require_admin()
    data = request_data()
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip()
    pin = _clean_pin(data.get("pin"))
    role = (data.get("role") or "user").strip().lower()

    errors = _validate_user_fields(name=name, email=email, pin=pin, role=role, require_pin=True)
    if errors:
        return json_error("Invalid user details.", 400, errors=errors)

    new_user = User(name=name, email=email, role=role, is_active=True)
    new_user.set_pin(pin)
    db.session.add(new_user)
    db.session.flush()
    log_activity(
        "user_created",
        user=current_user,
        target=new_user,
        summary=f"Created user {name}",
        meta={"email": email, "role": role},
    )
    db.session.commit()
    return jsonify({"success": True, "user": new_user.to_dict()}), 201
