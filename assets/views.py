# assets/views.py
from flask import Blueprint, jsonify, request, abort, current_app, send_file
from flask_login import login_required
from typing import Optional

from utilities.barcode_utils import AssetTagGenerator
from utilities.database import db, Asset, AssetAssignment, AssetHistory, ASSET_STATUSES, RETURN_REASONS
from utilities.lifecycle import (
    SCRAPPABLE_STATUSES,
    issue_asset,
    return_asset,
    scrap_asset,
    purchase_asset,
    update_asset_details,
    open_assignment,
)
from utilities.metrics import utilization_estimate
from utilities.view_helpers import request_data, clean_str, parse_int, json_error, current_user_id

assets_bp = Blueprint("assets", __name__)


def _get_asset_or_404(asset_id: int) -> Asset:
    asset = db.session.get(Asset, asset_id)
    if asset is None:
        abort(404)
    return asset


def _assets_with_status(*statuses: str):
    return Asset.query.filter(Asset.status.in_(statuses)).order_by(Asset.asset_code.asc()).all()


def _check_branch(branch: Optional[str]):
    if branch is not None and branch not in current_app.config["BRANCHES"]:
        return json_error("Select a valid branch.")
    return None


# --- List + search ---
@assets_bp.get("/")
@login_required
def list_assets():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "").strip().lower()
    branch = (request.args.get("branch") or "").strip()
    category_id = parse_int(request.args.get("category_id"))

    query = Asset.query
    if q:
        like = f"%{q}%"
        query = query.filter(
            db.or_(
                Asset.asset_code.ilike(like),
                Asset.name.ilike(like),
                Asset.serial_number.ilike(like),
                Asset.make.ilike(like),
                Asset.model.ilike(like),
            )
        )
    if status and status != "all":
        if status not in ASSET_STATUSES:
            return json_error(f"Unknown status {status}.")
        query = query.filter(Asset.status == status)
    if branch and branch != "all":
        query = query.filter(Asset.branch == branch)
    if category_id is not None:
        query = query.filter(Asset.category_id == category_id)

    assets = query.order_by(Asset.created_at.desc(), Asset.id.desc()).all()
    return jsonify([a.to_dict() for a in assets])


# Selection lists for the issue / return / scrap forms
@assets_bp.get("/issuable")
@login_required
def issuable_assets():
    return jsonify([a.to_dict() for a in _assets_with_status("available")])


@assets_bp.get("/returnable")
@login_required
def returnable_assets():
    return jsonify([a.to_dict() for a in _assets_with_status("assigned")])


@assets_bp.get("/scrappable")
@login_required
def scrappable_assets():
    return jsonify([a.to_dict() for a in _assets_with_status(*SCRAPPABLE_STATUSES)])


@assets_bp.get("/<int:asset_id>")
@login_required
def get_asset(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    payload = asset.to_dict()
    current = open_assignment(asset.id)
    payload["open_assignment"] = current.to_dict() if current else None
    return jsonify(payload)


# --- Purchase + edit ---
@assets_bp.post("/")
@login_required
def create_asset():
    data = request_data()
    error = _check_branch(clean_str(data.get("branch")))
    if error:
        return error

    asset = purchase_asset(data, performed_by=current_user_id(), commit=True)
    return jsonify({"success": True, "asset": asset.to_dict()}), 201


@assets_bp.route("/<int:asset_id>", methods=["PUT", "PATCH"])
@login_required
def update_asset(asset_id: int):
    _get_asset_or_404(asset_id)
    data = request_data()
    if "branch" in data:
        error = _check_branch(clean_str(data.get("branch")))
        if error:
            return error

    asset = update_asset_details(asset_id, data, commit=True)
    return jsonify({"success": True, "asset": asset.to_dict()})


# --- Lifecycle ---
@assets_bp.post("/issue")
@login_required
def issue():
    data = request_data()
    asset_id = parse_int(data.get("asset_id"))
    employee_id = parse_int(data.get("employee_id"))
    if asset_id is None or employee_id is None:
        return json_error("Select an asset and an employee.")

    assignment = issue_asset(
        asset_id,
        employee_id,
        clean_str(data.get("notes")),
        current_user_id(),
        commit=True,
    )
    return jsonify({
        "success": True,
        "message": f"Asset {assignment.asset.asset_code} issued to {assignment.employee.full_name}.",
        "assignment": assignment.to_dict(),
        "asset": assignment.asset.to_dict(),
    })


@assets_bp.post("/return")
@login_required
def return_():
    data = request_data()
    asset_id = parse_int(data.get("asset_id"))
    reason = (clean_str(data.get("return_reason")) or "").lower()
    if asset_id is None:
        return json_error("Select an asset to return.")
    if reason not in RETURN_REASONS:
        return json_error(f"Select a return reason: {', '.join(RETURN_REASONS)}.")

    assignment = return_asset(
        asset_id,
        reason,
        clean_str(data.get("notes")),
        current_user_id(),
        commit=True,
    )
    return jsonify({
        "success": True,
        "message": f"Asset {assignment.asset.asset_code} returned.",
        "assignment": assignment.to_dict(),
        "asset": assignment.asset.to_dict(),
    })


@assets_bp.post("/scrap")
@login_required
def scrap():
    data = request_data()
    asset_id = parse_int(data.get("asset_id"))
    notes = clean_str(data.get("notes"))
    if asset_id is None:
        return json_error("Select an asset to scrap.")
    if not notes:
        return json_error("Describe why the asset is being scrapped.")

    asset = scrap_asset(asset_id, notes, current_user_id(), commit=True)
    return jsonify({
        "success": True,
        "message": f"Asset {asset.asset_code} marked as scrapped.",
        "asset": asset.to_dict(),
    })


# --- History / assignments / utilization ---
@assets_bp.get("/<int:asset_id>/history")
@login_required
def asset_history(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    entries = (
        AssetHistory.query.filter_by(asset_id=asset.id)
        .order_by(AssetHistory.action_date.desc(), AssetHistory.id.desc())
        .all()
    )
    return jsonify({
        "asset": asset.to_dict(),
        "utilization": utilization_estimate(asset),
        "history": [h.to_dict() for h in entries],
    })


@assets_bp.get("/<int:asset_id>/utilization")
@login_required
def asset_utilization(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    return jsonify(utilization_estimate(asset))


@assets_bp.get("/assignments")
@login_required
def list_assignments():
    query = AssetAssignment.query
    if request.args.get("open") in ("1", "true", "yes"):
        query = query.filter(AssetAssignment.returned_date.is_(None))
    employee_id = parse_int(request.args.get("employee_id"))
    if employee_id is not None:
        query = query.filter(AssetAssignment.employee_id == employee_id)
    assignments = query.order_by(AssetAssignment.issued_date.desc(), AssetAssignment.id.desc()).all()
    return jsonify([a.to_dict() for a in assignments])


# --- Tags ---
@assets_bp.get("/<int:asset_id>/label.png")
@login_required
def asset_label(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    generator = AssetTagGenerator(current_app.config.get("APP_BASE_URL"))
    image = generator.create_label_image(asset.to_dict())
    return send_file(image, mimetype="image/png", download_name=f"{asset.asset_code}-label.png")


@assets_bp.get("/<int:asset_id>/qr.png")
@login_required
def asset_qr(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    generator = AssetTagGenerator(current_app.config.get("APP_BASE_URL"))
    return send_file(generator.generate_qr_code(asset.to_dict()), mimetype="image/png")


@assets_bp.get("/<int:asset_id>/barcode.png")
@login_required
def asset_barcode(asset_id: int):
    asset = _get_asset_or_404(asset_id)
    generator = AssetTagGenerator(current_app.config.get("APP_BASE_URL"))
    return send_file(generator.generate_barcode(asset.asset_code), mimetype="image/png")


@assets_bp.get("/labels.pdf")
@login_required
def asset_labels_pdf():
    ids = [parse_int(part) for part in (request.args.get("ids") or "").split(",")]
    ids = [i for i in ids if i is not None]
    if not ids:
        return json_error("No assets selected.")
    assets = Asset.query.filter(Asset.id.in_(ids)).order_by(Asset.asset_code.asc()).all()
    if not assets:
        return json_error("Selected assets not found.", 404)
    generator = AssetTagGenerator(current_app.config.get("APP_BASE_URL"))
    pdf = generator.create_labels_pdf([a.to_dict() for a in assets])
    return send_file(pdf, mimetype="application/pdf", as_attachment=True, download_name="asset-labels.pdf")
