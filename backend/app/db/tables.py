"""
Single source of truth for database tables that exist after migrations (001).

Use these names when writing raw SQL (e.g. TRUNCATE). alembic/env.py asserts the
registered models match this list.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "users",
    "owners",
    "parking_slots",
    "bookings",
    "notifications",
)
