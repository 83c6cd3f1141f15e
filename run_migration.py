#!/usr/bin/env python3
"""
Schema runner for the Aurelia concierge app

Usage:
    python run_migration.py up    # Create missing tables
    python run_migration.py down  # Drop all app tables
    python run_migration.py check # List missing tables

Flask-Migrate (``flask db upgrade``) remains the path for schema changes;
this script bootstraps an empty database.
"""

import sys
from pathlib import Path

# Add app directory to path
sys.path.insert(0, str(Path(__file__).parent / "aurelia"))

from concierge import create_app
from concierge.extensions import db
from sqlalchemy import inspect


def missing_tables():
    existing = set(inspect(db.engine).get_table_names())
    return [t for t in db.metadata.tables if t not in existing]


def check_tables():
    """Report which app tables are missing."""
    app = create_app()
    with app.app_context():
        missing = missing_tables()
        if missing:
            print(f"❌ Missing tables: {', '.join(sorted(missing))}")
        else:
            print(f"✅ All {len(db.metadata.tables)} tables exist")
        return not missing


def run_migration_up():
    """Create every table that does not exist yet."""
    print("Running migration UP (creating missing tables)...")
    app = create_app()
    with app.app_context():
        missing = missing_tables()
        if not missing:
            print("⚠️  Nothing to create. Skipping migration.")
            return True
        try:
            db.create_all()
            print(f"✅ Created {len(missing)} tables: {', '.join(sorted(missing))}")
            return True
        except Exception as e:
            db.session.rollback()
            print(f"❌ Migration failed: {e}")
            return False


def run_migration_down():
    """Drop every app table."""
    print("Running migration DOWN (dropping app tables)...")

    response = input("⚠️  This will DELETE all member, site and credit data. Continue? (yes/no): ")
    if response.lower() != "yes":
        print("Rollback cancelled.")
        return False

    app = create_app()
    with app.app_context():
        try:
            db.drop_all()
            print("✅ Rollback completed successfully!")
            return True
        except Exception as e:
            db.session.rollback()
            print(f"❌ Rollback failed: {e}")
            return False


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command = sys.argv[1].lower()

    if command == "up":
        success = run_migration_up()
    elif command == "down":
        success = run_migration_down()
    elif command == "check":
        success = check_tables()
    else:
        print(f"❌ Unknown command: {command}")
        print(__doc__)
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
