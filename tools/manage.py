#!/usr/bin/env python3
"""
SpeechKarma Management CLI

Commands for operating the statement archive:
- init-db: Apply schema.sql to the configured PostgreSQL database
- seed-reference: Load parties, politicians and contributors from reference/
- check-augmentation: Show the AI summary configuration, optionally test it live
- issue-token: Sign a development session token for a contributor
- health-check: Run comprehensive health checks

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage init-db
    python -m tools.manage seed-reference
    python -m tools.manage check-augmentation --live
    python -m tools.manage issue-token --user-id <uuid> --display-name "Jane"
"""

import argparse
import os
import sys
from uuid import UUID, uuid4


def _require_database():
    """Return a DatabaseConfig, or None (with a message) if no database is configured."""
    from speechkarma.db import DatabaseConfig, get_database_url

    db_url = get_database_url()
    if db_url is None:
        print("[FAIL] No database configured. Set DATABASE_URL or DATABASE_HOST.")
        return None
    return DatabaseConfig.from_url(db_url) if "://" in db_url else DatabaseConfig.from_env()


def cmd_init_db(args):
    """Apply schema.sql to the configured database."""
    import psycopg2

    from speechkarma.db import SCHEMA_PATH

    config = _require_database()
    if config is None:
        return 1

    print(f"Applying {SCHEMA_PATH.name} to {config.to_url(include_password=False)}")
    sql = SCHEMA_PATH.read_text(encoding="utf-8")

    try:
        conn = psycopg2.connect(config.to_dsn())
    except psycopg2.Error as e:
        print(f"[FAIL] Could not connect: {e}")
        return 1
    try:
        with conn.cursor() as cursor:
            cursor.execute(sql)
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        print(f"[FAIL] Schema could not be applied: {e}")
        return 1
    finally:
        conn.close()

    print("[OK] Schema applied")
    return 0


def cmd_seed_reference(args):
    """Load reference data into the configured store."""
    from reference.loader import load_reference_data
    from speechkarma.db import InMemoryStatementStore
    from speechkarma.web.shared_service import create_statement_store

    store = create_statement_store()
    if isinstance(store, InMemoryStatementStore):
        print("[WARN] In-memory store: data will be discarded when this command exits")

    result = load_reference_data(store, filename=args.file, verbose=True)

    print("\nPoliticians:")
    for ref_id, politician_id in result.politicians.items():
        print(f"  {ref_id}: {politician_id}")
    return 1 if result.errors else 0


def cmd_check_augmentation(args):
    """Report the augmentation configuration and optionally call the model."""
    from speechkarma.core import AugmentationConfig, OpenRouterClient, OpenRouterError
    from speechkarma.core.statements import (
        SUMMARY_RESPONSE_FORMAT,
        SUMMARY_SYSTEM_PROMPT,
        SUMMARY_USER_TEMPLATE,
    )

    config = AugmentationConfig.from_env()

    print("=== AI Summary Configuration ===\n")
    print(f"  USE_AI_SUMMARY: {'[OK] enabled' if config.enabled else '[INFO] disabled'}")
    print(f"  API key: {'[OK] set' if config.api_key else '[WARN] not set'}")
    print(f"  Base URL: {config.base_url}")
    print(f"  Model: {config.model}")
    print(f"  Timeout: {config.timeout_seconds}s")
    print(f"  Site URL: {config.site_url}")

    if not args.live:
        print("\nRun with --live to send a test request.")
        return 0

    print("\nSending test request...")
    with OpenRouterClient.from_config(config) as client:
        try:
            result = client.chat_completion(
                model=config.model,
                user_message=SUMMARY_USER_TEMPLATE.format(text=args.text),
                system_message=SUMMARY_SYSTEM_PROMPT,
                response_format=SUMMARY_RESPONSE_FORMAT,
                parameters={"temperature": config.temperature, "max_tokens": config.max_tokens},
            )
        except OpenRouterError as e:
            print(f"[FAIL] {type(e).__name__}: {e.message}")
            return 1

    print(f"[OK] Model: {result.model} (finish_reason={result.finish_reason})")
    print(f"  Summary: {result.content.get('summary') if isinstance(result.content, dict) else result.content}")
    return 0


def cmd_issue_token(args):
    """Sign a development session token."""
    from speechkarma.core import is_production
    from speechkarma.web.auth import SESSION_COOKIE, SessionUser, create_session_token

    if is_production():
        print("[FAIL] Refusing to issue tokens in production mode")
        return 1

    user_id = UUID(args.user_id) if args.user_id else uuid4()
    token = create_session_token(SessionUser(user_id=user_id, display_name=args.display_name))

    print(f"User id: {user_id}")
    print(f"Token:   {token}")
    print(f"\nUse as cookie '{SESSION_COOKIE}' or header 'Authorization: Bearer <token>'")
    return 0


def cmd_health_check(args):
    """Run comprehensive health checks."""
    import psycopg2

    from speechkarma.core import AugmentationConfig
    from speechkarma.db import get_store_driver
    from speechkarma.observability import check_health
    from speechkarma.web.shared_service import create_statement_store

    print("=== SpeechKarma Health Check ===\n")

    print("Statement store:")
    print(f"  Driver: {get_store_driver().value}")
    try:
        store = create_statement_store()
    except psycopg2.Error as e:
        print(f"  Status: [FAIL] Failed - {e}")
        return 1

    status = check_health(store=store, augmentation=AugmentationConfig.from_env())
    store_check = status.checks["statement_store"]
    print(f"  Backend: {store_check['backend']}")
    if store_check["status"] == "healthy":
        print("  Status: [OK] Reachable")
    else:
        print(f"  Status: [FAIL] {store_check.get('error')}")

    augmentation = status.checks["augmentation"]
    print("\nAI summaries:")
    print(f"  Status: {augmentation['status']}")
    print(f"  Model: {augmentation['model']}")
    if augmentation["status"] == "enabled" and not augmentation["api_key_configured"]:
        print("  API key: [WARN] not set, every summary attempt will fail")

    print("\nEnvironment:")
    session_secret = os.environ.get("SPEECHKARMA_SESSION_SECRET", "")
    if len(session_secret) >= 16:
        print("  Session secret: [OK] Set")
    else:
        print("  Session secret: [WARN] Using default (development)")

    print("\n=== Health Check Complete ===")
    return 0 if status.healthy else 1


def main():
    parser = argparse.ArgumentParser(
        description="SpeechKarma Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-db
    subparsers.add_parser(
        "init-db",
        help="Apply schema.sql to the configured database"
    )

    # seed-reference
    p_seed = subparsers.add_parser(
        "seed-reference",
        help="Load reference parties, politicians and contributors"
    )
    p_seed.add_argument("--file", default="politicians.json", help="File under reference/")

    # check-augmentation
    p_aug = subparsers.add_parser(
        "check-augmentation",
        help="Show the AI summary configuration"
    )
    p_aug.add_argument("--live", action="store_true", help="Send one real summary request")
    p_aug.add_argument(
        "--text",
        default="We will build 500,000 new homes by the end of this term.",
        help="Statement text for the live request",
    )

    # issue-token
    p_token = subparsers.add_parser(
        "issue-token",
        help="Sign a development session token"
    )
    p_token.add_argument("--user-id", help="Contributor UUID (random if omitted)")
    p_token.add_argument("--display-name", default="Dev Contributor", help="Display name")

    # health-check
    subparsers.add_parser(
        "health-check",
        help="Run comprehensive health checks"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "init-db": cmd_init_db,
        "seed-reference": cmd_seed_reference,
        "check-augmentation": cmd_check_augmentation,
        "issue-token": cmd_issue_token,
        "health-check": cmd_health_check,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
