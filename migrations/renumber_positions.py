"""Migration script to renumber task positions to the dense convention.

Older data used sparse positions (max + 10, virtual instances at 0). Every
(user, date) group is rewritten to 1..N with incomplete tasks ahead of
completed ones, keeping the existing relative order inside each zone.

Safe to run more than once: already-dense groups are left untouched.
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tasklane.database.database import SessionLocal
from tasklane.engine.positions import PositionManager


def renumber_positions():
    """Renumber all stored task positions."""

    db = SessionLocal()

    try:
        print("Starting position renumbering...")
        changed = PositionManager(db).renumber_all()

        if not changed:
            print("No tasks need renumbering.")
            return

        db.commit()
        print(f"Successfully renumbered {changed} tasks.")

    except Exception as e:
        db.rollback()
        print(f"Error during renumbering: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    print("=" * 60)
    print("Task Position Renumbering Script")
    print("=" * 60)
    print()
    print("This script rewrites every date's task positions to 1..N,")
    print("with incomplete tasks first and completed tasks last.")
    print()

    response = input("Do you want to proceed? (yes/no): ")
    if response.lower() in ['yes', 'y']:
        renumber_positions()
    else:
        print("Renumbering cancelled.")
