"""
DocTrack CLI — Bootstrap and management commands.

Commands:
- doctrack init    — Create tables, create/update the admin user, optional demo data
- doctrack run     — Serve the API with uvicorn
- doctrack check   — Validate doctrack.yaml and database connectivity
- doctrack logs    — Print recent structured log entries
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("doctrack.cli")

DEMO_PASSWORD = "123456"
DEMO_QR_TOKEN = "QR-1234567890"


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="doctrack",
        description="DocTrack — Folder and document tracking service",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # doctrack init
    init_parser = subparsers.add_parser("init", help="Create tables and the admin user")
    init_parser.add_argument("--config", help="Path to doctrack.yaml (default: auto-discover)")
    init_parser.add_argument("--admin-password", help="Admin password (prompted if not provided)")
    init_parser.add_argument(
        "--seed-demo", action="store_true",
        help="Also create the demo 'user' account and a demo folder with two documents",
    )

    # doctrack run
    run_parser = subparsers.add_parser("run", help="Serve the API")
    run_parser.add_argument("--config", help="Path to doctrack.yaml (default: auto-discover)")
    run_parser.add_argument("--host", help="Host to bind (default: server.host)")
    run_parser.add_argument("--port", type=int, help="Port to bind (default: server.port)")
    run_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # doctrack check
    check_parser = subparsers.add_parser("check", help="Validate config and database")
    check_parser.add_argument("--config", help="Path to doctrack.yaml (default: auto-discover)")

    # doctrack logs
    logs_parser = subparsers.add_parser("logs", help="Show recent structured log entries")
    logs_parser.add_argument("object_type", help="users / folders / documents / auth / api / system")
    logs_parser.add_argument("--category", default="execution", help="execution or security")
    logs_parser.add_argument("--days", type=int, default=7, help="How many days back (default: 7)")
    logs_parser.add_argument("--limit", type=int, default=50, help="Max entries (default: 50)")
    logs_parser.add_argument("--config", help="Path to doctrack.yaml (default: auto-discover)")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "check":
        return cmd_check(args)
    elif args.command == "logs":
        return cmd_logs(args)
    else:
        parser.print_help()
        return 0


def _load(config_path: Optional[str]):
    from doctrack.engine.config import load_config
    from doctrack.engine.errors import ConfigError

    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return None
    print(f"[OK] Loaded config ({config.environment}, database {config.database.url})")
    return config


def _seed_demo(session, config, admin_id: int) -> None:
    from doctrack.documents.service import DocumentService
    from doctrack.folders.service import FolderService
    from doctrack.users.service import UserService

    users = UserService(session, bcrypt_rounds=config.security.bcrypt_rounds)
    demo_user = users.find_by_username("user")
    if demo_user is None:
        demo_user = users.create_user({
            "name": "Normal User", "username": "user", "password": DEMO_PASSWORD, "role": "user",
        })
        print("[OK] Created demo user: 'user'")

    folders = FolderService(session, frontend_url=config.frontend.base_url)
    if folders.find_by_token(DEMO_QR_TOKEN) is not None:
        print("[INFO] Demo folder already exists")
        return

    folder = folders.create_folder({
        "title": "Important Documents",
        "created_by_id": admin_id,
        "qr_token": DEMO_QR_TOKEN,
        "status": "SENT",
    })
    documents = DocumentService(session)
    for number, subject, sender, creator in (
        ("DOC-2025-0001", "Official letter no. 1", "Somchai", admin_id),
        ("DOC-2025-0002", "Official letter no. 2", "Sumitra", demo_user.id),
    ):
        documents.create_document({
            "doc_number": number,
            "agency_type": "Department of Education",
            "department": "Academic Affairs",
            "subject": subject,
            "sender": sender,
            "created_by_id": creator,
            "folder_id": folder.id,
        })
    print(f"[OK] Created demo folder {folder.id} ({DEMO_QR_TOKEN}) with 2 documents")


def cmd_init(args: argparse.Namespace) -> int:
    """
    Bootstrap the database:
    1. Load config
    2. Create all tables
    3. Create the admin user, or reset its password if it exists
    4. Optionally seed demo data
    """
    print("=" * 60)
    print("  DocTrack Initialization")
    print("=" * 60)

    config = _load(args.config)
    if config is None:
        return 1

    from doctrack.db.models import UserRole
    from doctrack.db.session import close_all_sessions, init_db, session_scope, transaction
    from doctrack.engine.errors import DocTrackError
    from doctrack.engine.security import hash_password
    from doctrack.users.service import UserService

    try:
        init_db(config.database.url, create_tables=True, echo=config.database.echo)
        print("[OK] Database tables created")
    except SQLAlchemyError as e:
        print(f"[ERROR] Failed to create tables: {e}")
        return 1

    admin_password = args.admin_password
    if not admin_password:
        while True:
            admin_password = getpass.getpass("  Enter admin password: ")
            confirm = getpass.getpass("  Confirm password: ")
            if admin_password == confirm:
                break
            print("  Passwords do not match. Try again.")

    if len(admin_password) < config.security.password_min_length:
        print(f"[ERROR] Password must be at least {config.security.password_min_length} characters")
        return 1

    try:
        with session_scope() as session:
            users = UserService(session, bcrypt_rounds=config.security.bcrypt_rounds)
            admin = users.find_by_username("admin")
            if admin is not None:
                with transaction(session):
                    admin.password = hash_password(admin_password, rounds=config.security.bcrypt_rounds)
                    admin.role = UserRole.ADMIN.value
                print("[INFO] Admin user exists; password updated")
            else:
                admin = users.create_user({
                    "name": "Admin User",
                    "username": "admin",
                    "password": admin_password,
                    "role": UserRole.ADMIN.value,
                })
                print("[OK] Created admin user: 'admin'")

            if args.seed_demo:
                _seed_demo(session, config, admin.id)
    except (DocTrackError, SQLAlchemyError) as e:
        print(f"[ERROR] Seed data failed: {e}")
        return 1
    finally:
        close_all_sessions()

    print()
    print("=" * 60)
    print("  DocTrack initialized successfully!")
    print()
    print("  Admin login: admin / (your password)")
    print("  Run: doctrack run")
    print("=" * 60)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Serve the API with uvicorn."""
    import uvicorn

    config = _load(args.config)
    if config is None:
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port
    print(f"Starting DocTrack API on {host}:{port} ...")
    uvicorn.run(
        "doctrack.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=args.reload,
        log_level=config.logging.level.lower(),
    )
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Validate configuration and database connectivity."""
    config = _load(args.config)
    if config is None:
        return 1

    from doctrack.db.base import engine_registry
    from doctrack.db.session import ENGINE_NAME, close_all_sessions, init_db

    errors = 0
    if config.security.jwt_secret == config.security.jwt_refresh_secret:
        print("[ERROR] Access and refresh tokens share one secret")
        errors += 1
    else:
        print("[OK] Token secrets configured")

    try:
        init_db(config.database.url, echo=config.database.echo)
    except SQLAlchemyError as e:
        print(f"[ERROR] Database engine could not be created: {e}")
        return 1

    if engine_registry.health_check(ENGINE_NAME):
        print("[OK] Database reachable")
    else:
        print(f"[ERROR] Database unreachable: {config.database.url}")
        errors += 1
    close_all_sessions()

    if errors:
        print(f"\n{errors} problem(s) found")
        return 1
    print("\nAll checks passed")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Print recent structured log entries, newest first."""
    from doctrack.engine.config import load_config
    from doctrack.engine.errors import ConfigError
    from doctrack.engine.logging import OBJECT_TYPE_CATEGORIES, FileLogger

    if args.object_type not in OBJECT_TYPE_CATEGORIES:
        print(f"[ERROR] Unknown object type '{args.object_type}'. "
              f"Choose from: {', '.join(OBJECT_TYPE_CATEGORIES)}")
        return 1
    if args.category not in OBJECT_TYPE_CATEGORIES[args.object_type]:
        print(f"[ERROR] '{args.object_type}' has no '{args.category}' log")
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1

    today = date.today()
    entries = FileLogger(config.logging.directory).query(
        args.object_type,
        args.category,
        start_date=today - timedelta(days=args.days),
        end_date=today,
        limit=args.limit,
    )
    for entry in entries:
        print(json.dumps(entry, ensure_ascii=False))
    if not entries:
        print("[INFO] No log entries found")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
