# categories/views.py
from flask import Blueprint, jsonify, abort
from flask_login import login_required, current_user

from utilities.database import db, Category, log_activity
from utilities.lifecycle import active_asset_count, delete_category
from utilities.view_helpers import request_data, clean_str, json_error, require_admin

categories_bp = Blueprint("categories", __name__)


def _get_category_or_404(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        abort(404)
    return category


def _name_taken(name: str, category_id: int = 0) -> bool:
    return Category.query.filter(
        db.func.lower(Category.name) == name.lower(),
        Category.id != category_id,
    ).first() is not None


def _with_count(category: Category) -> dict:
    payload = category.to_dict()
    payload["active_asset_count"] = active_asset_count(category.id)
    return payload


@categories_bp.get("/")
@login_required
def list_categories():
    categories = Category.query.order_by(Category.name.asc()).all()
    return jsonify([_with_count(c) for c in categories])


@categories_bp.get("/<int:category_id>")
@login_required
def get_category(category_id: int):
    return jsonify(_with_count(_get_category_or_404(category_id)))


@categories_bp.post("/")
@login_required
def create_category():
    require_admin()
    data = request_data()
    name = clean_str(data.get("name"))
    description = clean_str(data.get("description"))

    if not name:
        return json_error("Name is required.")
    if _name_taken(name):
        return json_error(f"Category {name} already exists.", 409)

    category = Category(name=name, description=description)
    db.session.add(category)
    db.session.flush()
    log_activity(
        "category_created",
        user=current_user,
        target=category,
        summary=f"Created category {name}",
    )
    db.session.commit()
    return jsonify({"success": True, "category": category.to_dict()}), 201


@categories_bp.route("/<int:category_id>", methods=["PUT", "PATCH"])
@login_required
def update_category(category_id: int):
    require_admin()
    category = _get_category_or_404(category_id)
    data = request_data()

    changes = {}
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            return json_error("Name is required.")
        if _name_taken(name, category.id):
            return json_error(f"Category {name} already exists.", 409)
        if name != category.name:
            changes["name"] = {"from": category.name, "to": name}
            category.name = name
    if "description" in data:
        description = clean_str(data.get("description"))
        if description != category.description:
            changes["description"] = {"from": category.description, "to": description}
            category.description = description

    if changes:
        log_activity(
            "category_updated",
            user=current_user,
            target=category,
            summary=f"Updated category {category.name}",
            meta={"changes": changes},
        )
    db.session.commit()
    return jsonify({"success": True, "category": category.to_dict()})


@categories_bp.delete("/<int:category_id>")
@login_required
def remove_category(category_id: int):
    require_admin()
    category = _get_category_or_404(category_id)
    name = category.name

    # Raises CategoryInUseError (409) before any delete is issued
    delete_category(category.id)
    log_activity(
        "category_deleted",
        user=current_user,
        target_type="Category",
        target_id=category_id,
        summary=f"Deleted category {name}",
    )
    db.session.commit()
    return jsonify({"success": True, "message": f"Category {name} deleted."})
