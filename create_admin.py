#!/usr/bin/env python3
"""Create the first admin account for AssetDesk."""
import os

from app import create_app
from utilities.database import db, User


def create_admin_account(app=None, name="admin", email="admin@example.com", pin="1234"):
    """Create the admin account unless one already exists."""
    app = app or create_app()
    with app.app_context():
        existing = User.query.filter_by(role="admin").first()

        if existing:
            print(f"[OK] Admin account already exists: {existing.name} ({existing.email})")
            print(f"  User ID: {existing.id}")
            return existing

        admin = User(name=name, email=email, role="admin")
        admin.set_pin(pin)

        db.session.add(admin)
        db.session.commit()

        print("[OK] Admin account created successfully!")
        print(f"  Name: {admin.name}")
        print(f"  Email: {admin.email}")
        print(f"  User ID: {admin.id}")

        return admin


if __name__ == "__main__":
    create_admin_account(
        name=os.getenv("ADMIN_NAME", "admin"),
        email=os.getenv("ADMIN_EMAIL", "admin@example.com"),
        pin=os.getenv("ADMIN_PIN", "1234"),
    )
