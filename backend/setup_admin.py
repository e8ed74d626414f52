#!/usr/bin/env python3
"""
Script to grant admin access to a user.

Usage:
    python setup_admin.py <user_email>

Example:
    python setup_admin.py bdefensup@gmail.com
"""
import sys

from app.db.session import SessionLocal
from app.services.auth_service import grant_admin


def main(argv) -> int:
    if len(argv) != 2:
        print("Usage: python setup_admin.py <user_email>")
        return 1

    email = argv[1]
    db = SessionLocal()
    try:
        if grant_admin(email, db):
            print(f"✓ Admin access granted to user: {email}")
        else:
            print(f"User '{email}' already has admin access")
        return 0
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv))
