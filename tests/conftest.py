from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app import create_app
from config import TestingConfig
from utilities.database import db, Asset, Category, Employee, User, utc_now
from utilities.lifecycle import issue_asset, purchase_asset


@pytest.fixture
def app(tmp_path):
    config = type("IsolatedTestingConfig", (TestingConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///test_{uuid4().hex}.db",
        "DATA_DIR": tmp_path,
        "LOG_FILE": None,
    })

    application = create_app(config)

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_user(app):
    user = User(name="Test Admin", email="admin@example.com", role="admin")
    user.set_pin("1234")
    db.session.add(user)
    db.session.commit()
    return SimpleNamespace(id=user.id)


@pytest.fixture
def staff_user(app):
    user = User(name="Front Desk", email="desk@example.com", role="user")
    user.set_pin("5678")
    db.session.add(user)
    db.session.commit()
    return SimpleNamespace(id=user.id)


@pytest.fixture
def auth_client(client, app, admin_user):
    response = client.post("/auth/login", data={"pin": "1234"})
    assert response.status_code == 200
    return client


@pytest.fixture
def category(app):
    laptops = Category(name="Laptops", description="Portable computers")
    db.session.add(laptops)
    db.session.commit()
    return SimpleNamespace(id=laptops.id, name=laptops.name)


@pytest.fixture
def employee(app):
    person = Employee(
        employee_code="EMP-00001",
        first_name="Asha",
        last_name="Menon",
        email="asha.menon@example.com",
        department="IT",
        designation="Engineer",
        branch="Head Office",
        is_active=True,
    )
    db.session.add(person)
    db.session.commit()
    return SimpleNamespace(id=person.id, employee_code=person.employee_code)


def _purchase(category_id, **overrides):
    fields = {
        "serial_number": f"SN-{uuid4().hex[:8]}",
        "name": "ThinkPad T14",
        "make": "Lenovo",
        "model": "T14 Gen 3",
        "category_id": category_id,
        "branch": "Head Office",
        "purchase_date": (utc_now().date() - timedelta(days=100)).isoformat(),
        "purchase_price": "1200.00",
    }
    fields.update(overrides)
    return purchase_asset(fields, commit=True)


@pytest.fixture
def purchase(app, category):
    """Factory that buys an asset in the default category."""
    def _buy(**overrides):
        asset = _purchase(overrides.pop("category_id", category.id), **overrides)
        return SimpleNamespace(id=asset.id, asset_code=asset.asset_code)
    return _buy


@pytest.fixture
def available_asset(purchase):
    return purchase()


@pytest.fixture
def assigned_asset(purchase, employee):
    asset = purchase(name="Dell Latitude", make="Dell", model="5440")
    issue_asset(asset.id, employee.id, "Initial handover", commit=True)
    return asset


@pytest.fixture
def repair_asset(purchase):
    asset = purchase(name="HP EliteBook", make="HP", model="840")
    # Repair is entered outside the lifecycle operations
    Asset.query.filter_by(id=asset.id).update({Asset.status: "repair"})
    db.session.commit()
    return asset
