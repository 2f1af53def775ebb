from datetime import datetime

import pytest
from sqlalchemy import text

from utilities.database import db, Asset, AssetAssignment, AssetHistory, Category, Employee
from utilities.errors import (
    AssetNotFoundError,
    CategoryInUseError,
    ConcurrentModificationError,
    DuplicateOpenAssignmentError,
    EmployeeUnavailableError,
    InvalidTransitionError,
    LifecycleValidationError,
    OpenAssignmentMissingError,
)
from utilities.lifecycle import (
    can_transition,
    compose_return_notes,
    delete_category,
    issue_asset,
    open_assignment,
    purchase_asset,
    return_asset,
    scrap_asset,
    update_asset_details,
)


def _reload(asset_id):
    db.session.expire_all()
    return db.session.get(Asset, asset_id)


def _actions(asset_id):
    rows = AssetHistory.query.filter_by(asset_id=asset_id).order_by(AssetHistory.id.asc()).all()
    return [row.action for row in rows]


def _open_count(asset_id):
    return AssetAssignment.query.filter_by(asset_id=asset_id, returned_date=None).count()


def _assert_holder_invariant():
    for asset in Asset.query.all():
        assert (asset.status == "assigned") == (asset.current_assignee_id is not None)
        assert _open_count(asset.id) <= 1


def test_transition_table():
    assert can_transition("available", "assigned")
    assert can_transition("repair", "scrapped")
    assert not can_transition("assigned", "scrapped")
    assert not can_transition("scrapped", "available")


def test_purchase_creates_available_asset_with_history(app, category):
    asset = purchase_asset(
        {
            "serial_number": "SN-1",
            "name": "Monitor",
            "make": "LG",
            "model": "27UL500",
            "category_id": category.id,
            "branch": "Branch A",
            "purchase_date": "2024-01-15",
            "purchase_price": "249.999",
        },
        commit=True,
    )
    asset = _reload(asset.id)
    assert asset.asset_code == "AST-00001"
    assert asset.status == "available"
    assert asset.current_assignee_id is None
    assert asset.version == 1
    assert str(asset.purchase_price) == "250.00"
    history = AssetHistory.query.filter_by(asset_id=asset.id).one()
    assert history.action == "purchased"
    assert history.notes == "Initial purchase"


def test_purchase_rejects_missing_fields(app, category):
    with pytest.raises(LifecycleValidationError):
        purchase_asset({"name": "Incomplete", "category_id": category.id})
    assert Asset.query.count() == 0


def test_purchase_rejects_negative_price(app, category):
    with pytest.raises(LifecycleValidationError):
        purchase_asset({
            "serial_number": "SN-2",
            "name": "Phone",
            "make": "Apple",
            "model": "iPhone 15",
            "category_id": category.id,
            "branch": "Head Office",
            "purchase_date": "2024-01-15",
            "purchase_price": "-1",
        })


def test_issue_then_return_scenario(app, available_asset, employee):
    assignment = issue_asset(available_asset.id, employee.id, "For onboarding", commit=True)

    asset = _reload(available_asset.id)
    assert asset.status == "assigned"
    assert asset.current_assignee_id == employee.id
    assert asset.version == 2
    assert _open_count(asset.id) == 1
    assert _actions(asset.id) == ["purchased", "issued"]
    _assert_holder_invariant()

    return_asset(available_asset.id, "upgrade", commit=True)

    asset = _reload(available_asset.id)
    closed = db.session.get(AssetAssignment, assignment.id)
    assert asset.status == "available"
    assert asset.current_assignee_id is None
    assert closed.returned_date is not None
    assert closed.return_reason == "upgrade"
    # Notes from the issue survive when the return carries none
    assert closed.notes == "For onboarding"
    assert _open_count(asset.id) == 0
    assert _actions(asset.id)[1:] == ["issued", "returned"]
    _assert_holder_invariant()


def test_return_history_records_reason_and_employee(app, assigned_asset, employee):
    return_asset(assigned_asset.id, "resignation", "Left the company", commit=True)

    entry = (
        AssetHistory.query.filter_by(asset_id=assigned_asset.id, action="returned")
        .one()
    )
    assert entry.employee_id == employee.id
    assert entry.notes == "Return reason: resignation. Left the company"


def test_compose_return_notes_without_notes():
    assert compose_return_notes("other", None) == "Return reason: other."


def test_issue_requires_available(app, assigned_asset, employee):
    before = _reload(assigned_asset.id).version
    with pytest.raises(InvalidTransitionError):
        issue_asset(assigned_asset.id, employee.id, commit=True)

    asset = _reload(assigned_asset.id)
    assert asset.version == before
    assert _open_count(asset.id) == 1
    assert _actions(asset.id) == ["purchased", "issued"]


def test_issue_to_inactive_employee_is_refused(app, available_asset, employee):
    person = db.session.get(Employee, employee.id)
    person.is_active = False
    db.session.commit()

    with pytest.raises(EmployeeUnavailableError):
        issue_asset(available_asset.id, employee.id, commit=True)
    assert _reload(available_asset.id).status == "available"
    assert AssetAssignment.query.count() == 0


def test_issue_unknown_asset(app, employee):
    with pytest.raises(AssetNotFoundError):
        issue_asset(999, employee.id)


def test_return_requires_assigned(app, available_asset):
    with pytest.raises(InvalidTransitionError):
        return_asset(available_asset.id, "other", commit=True)
    assert _actions(available_asset.id) == ["purchased"]


def test_return_rejects_unknown_reason(app, assigned_asset):
    with pytest.raises(LifecycleValidationError):
        return_asset(assigned_asset.id, "lost", commit=True)
    assert _reload(assigned_asset.id).status == "assigned"


def test_return_without_open_assignment_writes_nothing(app, assigned_asset):
    AssetAssignment.query.filter_by(asset_id=assigned_asset.id).delete()
    db.session.commit()
    version = _reload(assigned_asset.id).version

    with pytest.raises(OpenAssignmentMissingError):
        return_asset(assigned_asset.id, "other", commit=True)

    asset = _reload(assigned_asset.id)
    assert asset.status == "assigned"
    assert asset.version == version
    assert _actions(asset.id) == ["purchased", "issued"]


def test_duplicate_open_assignments_are_refused(app, assigned_asset, employee):
    first = AssetAssignment.query.filter_by(asset_id=assigned_asset.id).one()
    db.session.add(AssetAssignment(asset_id=assigned_asset.id, employee_id=employee.id,
                                   issued_date=first.issued_date))
    db.session.commit()

    with pytest.raises(DuplicateOpenAssignmentError):
        open_assignment(assigned_asset.id)
    with pytest.raises(OpenAssignmentMissingError):
        return_asset(assigned_asset.id, "other", commit=True)
    assert _reload(assigned_asset.id).status == "assigned"


def test_scrap_repair_asset_scenario(app, repair_asset):
    scrap_asset(repair_asset.id, "failed diagnostics", commit=True)

    asset = _reload(repair_asset.id)
    assert asset.status == "scrapped"
    assert asset.current_assignee_id is None
    assert float(asset.purchase_price) == 1200.0
    entry = AssetHistory.query.filter_by(asset_id=asset.id, action="scrapped").one()
    assert entry.notes == "failed diagnostics"
    _assert_holder_invariant()


def test_scrap_refuses_assigned_asset(app, assigned_asset):
    with pytest.raises(InvalidTransitionError):
        scrap_asset(assigned_asset.id, "broken", commit=True)
    assert _reload(assigned_asset.id).status == "assigned"


def test_scrapped_asset_is_terminal(app, available_asset, employee):
    scrap_asset(available_asset.id, commit=True)
    with pytest.raises(InvalidTransitionError):
        issue_asset(available_asset.id, employee.id, commit=True)
    with pytest.raises(InvalidTransitionError):
        scrap_asset(available_asset.id, commit=True)
    with pytest.raises(InvalidTransitionError):
        update_asset_details(available_asset.id, {"name": "Renamed"})


def test_stale_version_raises_conflict_and_rolls_back(app, available_asset, employee):
    asset = db.session.get(Asset, available_asset.id)
    assert asset.version == 1

    # Another writer bumps the row behind the session's back
    db.session.execute(
        text("UPDATE assets SET version = version + 1 WHERE id = :id"),
        {"id": available_asset.id},
    )

    with pytest.raises(ConcurrentModificationError):
        issue_asset(available_asset.id, employee.id, commit=True)

    asset = _reload(available_asset.id)
    assert asset.status == "available"
    assert asset.current_assignee_id is None
    assert AssetAssignment.query.count() == 0
    assert _actions(asset.id) == ["purchased"]


def test_update_asset_details_rejects_lifecycle_fields(app, available_asset):
    with pytest.raises(LifecycleValidationError):
        update_asset_details(available_asset.id, {"status": "assigned"})

    update_asset_details(available_asset.id, {"name": "ThinkPad X1", "warranty_expiry": "2027-01-01"}, commit=True)
    asset = _reload(available_asset.id)
    assert asset.name == "ThinkPad X1"
    assert asset.warranty_expiry.isoformat() == "2027-01-01"
    assert asset.status == "available"


def test_delete_category_refused_with_active_asset(app, category, available_asset):
    with pytest.raises(CategoryInUseError) as excinfo:
        delete_category(category.id, commit=True)
    assert "1 active asset" in excinfo.value.message
    assert db.session.get(Category, category.id) is not None


def test_delete_category_with_only_scrapped_assets(app, category, available_asset):
    scrap_asset(available_asset.id, commit=True)
    delete_category(category.id, commit=True)

    db.session.expire_all()
    assert db.session.get(Category, category.id) is None
    asset = db.session.get(Asset, available_asset.id)
    assert asset.category_id is None
    assert asset.status == "scrapped"


def test_delete_category_keeps_scrap_date(app, category, available_asset):
    scrap_asset(available_asset.id, commit=True)
    scrapped_on = datetime(2020, 1, 1)
    Asset.query.filter_by(id=available_asset.id).update({Asset.updated_at: scrapped_on})
    db.session.commit()

    delete_category(category.id, commit=True)

    db.session.expire_all()
    asset = db.session.get(Asset, available_asset.id)
    assert asset.category_id is None
    assert asset.updated_at == scrapped_on


def test_delete_empty_category(app, category):
    delete_category(category.id, commit=True)
    assert Category.query.count() == 0


def test_refused_operation_keeps_callers_pending_writes(app, assigned_asset):
    db.session.add(Category(name="Monitors"))
    with pytest.raises(InvalidTransitionError):
        scrap_asset(assigned_asset.id, commit=False)
    db.session.commit()

    db.session.expire_all()
    assert Category.query.filter_by(name="Monitors").count() == 1
    assert db.session.get(Asset, assigned_asset.id).status == "assigned"
