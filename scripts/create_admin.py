#!/usr/bin/env python3
"""
scripts/create_admin.py -- Create the first verified admin identity.

Admins cannot self-register (registration always creates a member), so the
first admin is seeded from the command line against the configured database.

Usage:
  python -m scripts.create_admin --email admin@samaj.com --phone +1234567890 \
      --membership-no ADMIN001 --password 'change-me-now'
  python -m scripts.create_admin ... --database-url sqlite:///samaj_identity.db

The password is prompted for when --password is omitted.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys

from auth.errors import DuplicateIdentity
from auth.models import ROLE_ADMIN, Identity, normalize_email, normalize_phone
from auth.store import IdentityStore
from auth.tokens import hash_password

logger = logging.getLogger("samaj.scripts")


def create_admin(
    store: IdentityStore,
    *,
    username: str,
    email: str,
    phone: str,
    membership_no: str,
    password: str,
) -> tuple[int, str]:
    """Create a verified admin. Returns (identity_id, "created" | "exists").

    An existing admin with the same email is left untouched. Any other
    collision on a unique field raises DuplicateIdentity -- this script never
    promotes or overwrites an existing member.
    """
    existing = store.get_by_email(email)
    if existing is not None and existing.is_admin:
        return existing.id, "exists"
    if store.find_conflict(username=username, email=email, phone=phone, membership_no=membership_no):
        raise DuplicateIdentity()
    identity_id = store.create_identity(
        Identity(
            username=username,
            email=email,
            phone=phone,
            membership_no=membership_no,
            hashed_password=hash_password(password),
            role=ROLE_ADMIN,
            is_verified=True,
        )
    )
    return identity_id, "created"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create the first Samaj admin account.")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--phone", required=True)
    parser.add_argument("--membership-no", default="ADMIN001")
    parser.add_argument("--password", help="Prompted for when omitted.")
    parser.add_argument("--database-url", help="Defaults to DATABASE_URL from settings.")
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = _build_parser().parse_args(argv)

    database_url = args.database_url
    if database_url is None:
        from core.config import get_settings

        database_url = get_settings().database_url

    password = args.password or getpass.getpass("Admin password: ")
    if len(password) < 6:
        logger.error("Password must be at least 6 characters.")
        return 2

    store = IdentityStore(database_url)
    try:
        identity_id, status = create_admin(
            store,
            username=args.username,
            email=normalize_email(args.email),
            phone=normalize_phone(args.phone),
            membership_no=args.membership_no,
            password=password,
        )
    except DuplicateIdentity as exc:
        logger.error("%s", exc.message)
        return 1
    finally:
        store.close()

    if status == "exists":
        logger.info("Admin %s already exists (id: %s)", args.email, identity_id)
    else:
        logger.info("Admin user created successfully (id: %s)", identity_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
