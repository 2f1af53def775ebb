from datetime import datetime

from utilities.database import db, Asset, AssetAssignment, Employee, utc_now


def _asset_payload(category_id, **overrides):
    payload = {
        "serial_number": "5CG1234XYZ",
        "name": "EliteBook 840",
        "make": "HP",
        "model": "840 G9",
        "category_id": category_id,
        "branch": "Branch A",
        "purchase_date": "2024-03-01",
        "purchase_price": "1350.50",
    }
    payload.update(overrides)
    return payload


def test_healthcheck(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json == {"ok": True}


def test_endpoints_require_login(client):
    for url in ("/", "/assets/", "/employees/", "/stock", "/exports/stock.csv"):
        assert client.get(url).status_code == 401


def test_dashboard(auth_client, available_asset, assigned_asset, employee):
    response = auth_client.get("/")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["stats"]["total_assets"] == 2
    assert payload["stats"]["assigned_assets"] == 1
    assert payload["stats"]["active_employees"] == 1
    assert payload["category_count"] == 1
    assert len(payload["recent_assets"]) == 2

    branches = auth_client.get("/stock-by-branch").get_json()
    head_office = next(b for b in branches if b["branch"] == "Head Office")
    assert head_office["total"] == 2


def test_category_crud_and_delete_guard(auth_client, available_asset, category):
    response = auth_client.post("/categories/", json={"name": "Monitors"})
    assert response.status_code == 201
    monitors_id = response.get_json()["category"]["id"]

    assert auth_client.post("/categories/", json={"name": "monitors"}).status_code == 409

    listing = {c["name"]: c for c in auth_client.get("/categories/").get_json()}
    assert listing["Laptops"]["active_asset_count"] == 1
    assert listing["Monitors"]["active_asset_count"] == 0

    refused = auth_client.delete(f"/categories/{category.id}")
    assert refused.status_code == 409
    assert "1 active asset" in refused.get_json()["error"]

    assert auth_client.delete(f"/categories/{monitors_id}").status_code == 200
    assert auth_client.get(f"/categories/{monitors_id}").status_code == 404


def test_category_changes_need_admin(client, staff_user):
    client.post("/auth/login", data={"pin": "5678"})
    assert client.post("/categories/", json={"name": "Printers"}).status_code == 403


def test_create_employee_generates_code(auth_client, app):
    response = auth_client.post(
        "/employees/",
        json={
            "first_name": "Ravi",
            "last_name": "Kumar",
            "email": "ravi.kumar@example.com",
            "department": "Finance",
            "designation": "Analyst",
            "branch": "Branch B",
        },
    )
    assert response.status_code == 201
    assert response.get_json()["employee"]["employee_code"] == "EMP-00001"


def test_create_employee_validation(auth_client, employee):
    response = auth_client.post(
        "/employees/",
        json={
            "first_name": "Dup",
            "last_name": "Email",
            "email": "ASHA.MENON@example.com",
            "department": "Legal",
            "designation": "Counsel",
            "branch": "Moon Base",
        },
    )
    assert response.status_code == 400
    errors = response.get_json()["errors"]
    assert set(errors) == {"email", "department", "branch"}


def test_deactivate_employee_blocks_issue(auth_client, employee, available_asset):
    response = auth_client.patch(f"/employees/{employee.id}", json={"is_active": False})
    assert response.status_code == 200
    assert response.get_json()["employee"]["is_active"] is False

    inactive = auth_client.get("/employees/?status=inactive").get_json()
    assert [e["id"] for e in inactive] == [employee.id]

    issued = auth_client.post("/assets/issue", json={"asset_id": available_asset.id, "employee_id": employee.id})
    assert issued.status_code == 409


def test_update_employee_rejects_non_boolean_active_flag(auth_client, employee):
    for value in (None, "maybe"):
        response = auth_client.patch(f"/employees/{employee.id}", json={"is_active": value})
        assert response.status_code == 400
        assert "is_active" in response.get_json()["errors"]

    db.session.expire_all()
    assert db.session.get(Employee, employee.id).is_active is True


def test_purchase_asset(auth_client, category):
    response = auth_client.post("/assets/", json=_asset_payload(category.id))
    assert response.status_code == 201
    asset = response.get_json()["asset"]
    assert asset["asset_code"] == "AST-00001"
    assert asset["status"] == "available"
    assert asset["purchase_price"] == 1350.5

    history = auth_client.get(f"/assets/{asset['id']}/history").get_json()["history"]
    assert [h["action"] for h in history] == ["purchased"]


def test_purchase_asset_validation(auth_client, category):
    bad_branch = auth_client.post("/assets/", json=_asset_payload(category.id, branch="Nowhere"))
    assert bad_branch.status_code == 400

    missing = auth_client.post("/assets/", json={"name": "Half a laptop"})
    assert missing.status_code == 400
    assert "Missing required fields" in missing.get_json()["error"]

    unknown_category = auth_client.post("/assets/", json=_asset_payload(9999))
    assert unknown_category.status_code == 404


def test_issue_and_return_through_api(auth_client, available_asset, employee):
    response = auth_client.post(
        "/assets/issue",
        json={"asset_id": available_asset.id, "employee_id": employee.id, "notes": "New joiner"},
    )
    assert response.status_code == 200
    assert response.get_json()["asset"]["status"] == "assigned"

    open_rows = auth_client.get(f"/assets/assignments?open=1&employee_id={employee.id}").get_json()
    assert len(open_rows) == 1

    again = auth_client.post("/assets/issue", json={"asset_id": available_asset.id, "employee_id": employee.id})
    assert again.status_code == 409

    no_reason = auth_client.post("/assets/return", json={"asset_id": available_asset.id})
    assert no_reason.status_code == 400

    returned = auth_client.post(
        "/assets/return",
        json={"asset_id": available_asset.id, "return_reason": "upgrade"},
    )
    assert returned.status_code == 200
    body = returned.get_json()
    assert body["asset"]["status"] == "available"
    assert body["asset"]["current_assignee_id"] is None
    assert body["assignment"]["return_reason"] == "upgrade"

    history = auth_client.get(f"/assets/{available_asset.id}/history").get_json()["history"]
    assert [h["action"] for h in history] == ["returned", "issued", "purchased"]


def test_issue_requires_both_ids(auth_client):
    assert auth_client.post("/assets/issue", json={"asset_id": 1}).status_code == 400


def test_issue_unknown_asset_is_404(auth_client, employee):
    response = auth_client.post("/assets/issue", json={"asset_id": 4242, "employee_id": employee.id})
    assert response.status_code == 404


def test_selection_lists(auth_client, available_asset, assigned_asset, repair_asset):
    issuable = [a["id"] for a in auth_client.get("/assets/issuable").get_json()]
    returnable = [a["id"] for a in auth_client.get("/assets/returnable").get_json()]
    scrappable = {a["id"] for a in auth_client.get("/assets/scrappable").get_json()}
    assert issuable == [available_asset.id]
    assert returnable == [assigned_asset.id]
    assert scrappable == {available_asset.id, repair_asset.id}


def test_scrap_repair_asset_through_api(auth_client, repair_asset):
    assert auth_client.post("/assets/scrap", json={"asset_id": repair_asset.id}).status_code == 400

    response = auth_client.post("/assets/scrap", json={"asset_id": repair_asset.id, "notes": "failed diagnostics"})
    assert response.status_code == 200
    assert response.get_json()["asset"]["status"] == "scrapped"

    for status in ("available", "assigned", "repair"):
        listed = auth_client.get(f"/assets/?status={status}").get_json()
        assert repair_asset.id not in [a["id"] for a in listed]

    report = auth_client.get("/exports/scrapped.csv")
    assert report.status_code == 200
    text = report.get_data(as_text=True)
    assert repair_asset.asset_code in text
    assert "$1,200.00" in text

    preview = auth_client.get("/exports/preview/scrapped").get_json()
    assert preview["total_count"] == 1
    assert "Total Original Value: $1,200.00" in preview["summary"]


def test_scrapped_report_dates_from_history(auth_client, available_asset):
    scrapped = auth_client.post("/assets/scrap", json={"asset_id": available_asset.id, "notes": "water damage"})
    assert scrapped.status_code == 200
    Asset.query.filter_by(id=available_asset.id).update({Asset.updated_at: datetime(2030, 1, 1)})
    db.session.commit()

    preview = auth_client.get("/exports/preview/scrapped").get_json()
    assert preview["rows"][0]["Scrapped Date"] == utc_now().date().isoformat()


def test_scrap_assigned_asset_is_refused(auth_client, assigned_asset):
    response = auth_client.post("/assets/scrap", json={"asset_id": assigned_asset.id, "notes": "cracked"})
    assert response.status_code == 409
    assert db.session.get(Asset, assigned_asset.id).status == "assigned"


def test_patch_asset_cannot_touch_status(auth_client, available_asset):
    response = auth_client.patch(f"/assets/{available_asset.id}", json={"status": "scrapped"})
    assert response.status_code == 400

    renamed = auth_client.patch(f"/assets/{available_asset.id}", json={"name": "ThinkPad T14s"})
    assert renamed.status_code == 200
    assert renamed.get_json()["asset"]["name"] == "ThinkPad T14s"


def test_asset_search_and_detail(auth_client, available_asset, assigned_asset, employee):
    found = auth_client.get("/assets/?q=Dell").get_json()
    assert [a["id"] for a in found] == [assigned_asset.id]
    assert auth_client.get("/assets/?status=lost").status_code == 400

    detail = auth_client.get(f"/assets/{assigned_asset.id}").get_json()
    assert detail["open_assignment"]["employee_id"] == employee.id
    assert detail["current_assignee_name"] == "Asha Menon"

    assert auth_client.get("/assets/31337").status_code == 404


def test_asset_utilization_endpoint(auth_client, assigned_asset):
    result = auth_client.get(f"/assets/{assigned_asset.id}/utilization").get_json()
    assert result["total_days"] == 100
    assert result["assigned_days"] == 80
    assert result["utilization_rate"] == 80


def test_stock_endpoint_is_stable(auth_client, available_asset, assigned_asset, repair_asset):
    first = auth_client.get("/stock").get_json()
    second = auth_client.get("/stock").get_json()
    assert first == second
    assert first["totals"]["available"] == 1
    assert first["totals"]["assigned"] == 1
    assert first["totals"]["repair"] == 1

    branch_only = auth_client.get("/stock?branch=Branch%20A").get_json()
    assert branch_only["totals"]["available"] == 0


def test_exports_in_every_format(auth_client, available_asset, assigned_asset):
    csv_response = auth_client.get("/exports/utilization.csv")
    assert csv_response.status_code == 200
    assert csv_response.mimetype == "text/csv"
    assert "Utilization" in csv_response.get_data(as_text=True).splitlines()[0]

    xlsx_response = auth_client.get("/exports/stock.xlsx")
    assert xlsx_response.status_code == 200
    assert xlsx_response.data[:2] == b"PK"

    pdf_response = auth_client.get("/exports/utilization.pdf")
    assert pdf_response.status_code == 200
    assert pdf_response.mimetype == "application/pdf"
    assert pdf_response.data.startswith(b"%PDF")

    assert auth_client.get("/exports/stock.doc").status_code == 400
    assert auth_client.get("/exports/payroll.csv").status_code == 400


def test_stock_preview_skips_empty_cells(auth_client, available_asset):
    preview = auth_client.get("/exports/preview/stock").get_json()
    assert preview["total_count"] == 1
    assert preview["rows"][0]["Branch"] == "Head Office"
    assert preview["rows"][0]["Available"] == 1


def test_asset_tags(auth_client, available_asset):
    label = auth_client.get(f"/assets/{available_asset.id}/label.png")
    assert label.status_code == 200
    assert label.mimetype == "image/png"

    barcode = auth_client.get(f"/assets/{available_asset.id}/barcode.png")
    assert barcode.status_code == 200
    assert barcode.data.startswith(b"\x89PNG")

    sheet = auth_client.get(f"/assets/labels.pdf?ids={available_asset.id}")
    assert sheet.status_code == 200
    assert sheet.data.startswith(b"%PDF")

    assert auth_client.get("/assets/labels.pdf").status_code == 400


def test_employee_detail_lists_assignments(auth_client, assigned_asset, employee):
    detail = auth_client.get(f"/employees/{employee.id}").get_json()
    assert [a["asset_id"] for a in detail["assignments"]] == [assigned_asset.id]
    assert AssetAssignment.query.count() == 1
    assert db.session.get(Employee, employee.id).is_active is True
