"""
Create an admin account, or promote an existing user to admin.

    python seed_admin.py [name] [email] [password] [--reset-password]

ADMIN_NAME / ADMIN_EMAIL / ADMIN_PASSWORD take precedence over the arguments.
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from pymongo.database import Database

from credentials import CredentialStore
from database import TIMEOUT_ERRORS, connect, ensure_indexes
from log_config import configure_logging
from settings import Settings

logger = logging.getLogger("blog.seed")


def seed_admin(
    store: CredentialStore, name: str, email: str, password: str, reset_password: bool = False
) -> str:
    """Return what happened: "created", "promoted" or "exists"."""
    user = store.find_by_email(email)
    if user is None:
        store.register(name, email, password, role="admin")
        logger.info("created admin user %s", email)
        return "created"
    if user.get("role") == "admin":
        logger.info("admin already exists: %s", email)
        return "exists"
    store.set_role(user["_id"], "admin")
    if reset_password:
        store.set_password(user["_id"], password)
    logger.info("updated existing user to admin: %s", email)
    return "promoted"


def main(argv: Optional[List[str]] = None, db: Optional[Database] = None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote the admin account")
    parser.add_argument("name", nargs="?", default="Admin")
    parser.add_argument("email", nargs="?", default="admin@example.com")
    parser.add_argument("password", nargs="?", default="ChangeMe123")
    parser.add_argument("--reset-password", action="store_true", help="also reset the password when promoting")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    if db is None:
        db = connect(settings)

    try:
        ensure_indexes(db)
        store = CredentialStore(db, settings.password_scheme, settings.bcrypt_rounds)
        seed_admin(
            store,
            os.getenv("ADMIN_NAME") or args.name,
            os.getenv("ADMIN_EMAIL") or args.email,
            os.getenv("ADMIN_PASSWORD") or args.password,
            reset_password=args.reset_password,
        )
    except TIMEOUT_ERRORS as e:
        logger.error("seeding error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
