#!/usr/bin/env python3
"""
campusdesk -- Multi-role school management API.

Usage:
  python main.py bootstrap --username root --email root@example.com \\
      --full-name "Site Admin" --phone 03001234567 --gender male \\
      --city Karachi --campus "Main Campus"
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload

bootstrap creates the first city, campus and a verified admin. It refuses to
run once any admin exists: further admins are registered through
POST /api/admin/register by an existing admin.

Configuration comes from the environment / .env (see core/config.py).
"""

import argparse
import getpass
import sys
from typing import Optional

from academy.models import Campus, City
from academy.store import AcademyStore
from auth.models import Admin
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES, hash_password, password_fits
from core.config import get_settings
from core.database import create_db_engine


def bootstrap_admin(
    user_store: UserStore,
    academy: AcademyStore,
    *,
    username: str,
    email: str,
    password: str,
    full_name: str,
    phone_number: str,
    gender: str,
    city_name: str,
    campus_name: str,
) -> Optional[int]:
    """Create the first admin with its city and campus. Returns None if an admin already exists.

    An existing city or campus with the given name is reused.
    """
    if user_store.has_admins():
        return None
    city = next((c for c in academy.list_cities() if c.city_name == city_name), None)
    city_id = city.id if city else academy.create_city(City(city_name=city_name))
    campus = next((c for c in academy.list_campuses(city_id) if c.name == campus_name), None)
    campus_id = campus.id if campus else academy.create_campus(Campus(name=campus_name, city_id=city_id))
    return user_store.create_admin(
        Admin(
            full_name=full_name,
            username=username,
            email=email,
            phone_number=phone_number,
            gender=gender,
            city_id=city_id,
            campus_id=campus_id,
            hashed_password=hash_password(password),
            is_verified=True,
        )
    )


def _read_password() -> str:
    password = getpass.getpass("Admin password: ")
    if len(password) < 8 or len(password) > 72:
        print("  [!] Password must be 8-72 characters.")
        sys.exit(1)
    if not password_fits(password):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes; use fewer non-ASCII characters.")
        sys.exit(1)
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def _cmd_bootstrap(args: argparse.Namespace) -> None:
    engine = create_db_engine(get_settings().database_url)
    user_store = UserStore(engine)
    academy = AcademyStore(engine)
    try:
        if user_store.has_admins():
            print("  [!] An admin already exists. Nothing to do.")
            return
        admin_id = bootstrap_admin(
            user_store,
            academy,
            username=args.username,
            email=args.email,
            password=_read_password(),
            full_name=args.full_name,
            phone_number=args.phone,
            gender=args.gender,
            city_name=args.city,
            campus_name=args.campus,
        )
        print(f"  Admin '{args.username}' created (id={admin_id}).")
    finally:
        engine.dispose()


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="campusdesk",
        description="Multi-role school management API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    boot = sub.add_parser("bootstrap", help="Create the first city, campus and verified admin")
    boot.add_argument("--username", required=True, help="Admin login name")
    boot.add_argument("--email", required=True, help="Admin email address")
    boot.add_argument("--full-name", required=True, help="Admin display name")
    boot.add_argument("--phone", required=True, help="Admin phone number")
    boot.add_argument("--gender", required=True, help="Admin gender")
    boot.add_argument("--city", required=True, help="Name of the admin's city (created if missing)")
    boot.add_argument("--campus", required=True, help="Name of the admin's campus (created if missing)")
    boot.set_defaults(func=_cmd_bootstrap)

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
