#!/usr/bin/env python3
"""
Create the bootstrap admin account from DEFAULT_ADMIN_* settings, if no admin exists.

Run from backend dir (after alembic upgrade head):
  python scripts/init_admin.py
"""
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.db.session import SessionLocal
from app.services.user_service import ensure_default_admin


def main():
    db = SessionLocal()
    try:
        admin = ensure_default_admin(db)
        if admin is None:
            print("Admin already exists; nothing to do.")
        else:
            print(f"Admin created: {admin.email}")
            print("Change DEFAULT_ADMIN_PASSWORD after first login.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
