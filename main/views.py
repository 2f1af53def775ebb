from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required
from utilities.database import db, Asset, Category, Employee, AssetHistory
from utilities.metrics import dashboard_stats, stock_by_branch, recent_assets, stock_summary
from utilities.view_helpers import parse_int


main_bp = Blueprint("main", __name__)


@main_bp.route("/", methods=["GET"])
@login_required
def home():
    assets = Asset.query.all()
    employees = Employee.query.all()
    branches = current_app.config["BRANCHES"]

    latest_activity = (
        AssetHistory.query.order_by(AssetHistory.action_date.desc(), AssetHistory.id.desc())
        .limit(10)
        .all()
    )

    return jsonify({
        "stats": dashboard_stats(assets, employees),
        "stock_by_branch": stock_by_branch(assets, branches),
        "recent_assets": [a.to_dict() for a in recent_assets(assets)],
        "latest_activity": [h.to_dict() for h in latest_activity],
        "category_count": db.session.query(Category.id).count(),
    })


@main_bp.route("/stock-by-branch", methods=["GET"])
@login_required
def branch_stock():
    assets = Asset.query.filter(Asset.status != "scrapped").all()
    return jsonify(stock_by_branch(assets, current_app.config["BRANCHES"]))


@main_bp.route("/stock", methods=["GET"])
@login_required
def stock():
    branch = (request.args.get("branch") or "").strip() or None
    category_id = parse_int(request.args.get("category_id"))

    summary = stock_summary(
        Asset.query.filter(Asset.status != "scrapped").all(),
        current_app.config["BRANCHES"],
        Category.query.order_by(Category.name.asc()).all(),
        branch=branch,
        category_id=category_id,
    )
    return jsonify(summary)
