"""
CLI commands for Adwatch.
"""

import argparse
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from src.app import AdwatchApp
from src.config import SETTING_KEYS, AppConfig, load_config
from src.database.connection import Database
from src.database.models import DiscordTarget, EmailTarget, NotificationTarget, Watcher
from src.errors import AdwatchError


def parse_targets(
    discord: Optional[list[str]] = None,
    email: Optional[list[str]] = None,
) -> list[NotificationTarget]:
    """Build notification targets from repeated --discord/--email flags."""
    targets: list[NotificationTarget] = []
    for url in discord or []:
        targets.append(DiscordTarget(webhook_url=url))
    for address in email or []:
        targets.append(EmailTarget(email=address))
    return targets


def format_watcher(watcher: Watcher) -> str:
    """One-line summary of a watcher."""
    price = ""
    if watcher.min_price is not None or watcher.max_price is not None:
        low = watcher.min_price if watcher.min_price is not None else ""
        high = watcher.max_price if watcher.max_price is not None else ""
        price = f" price={low}-{high}"
    last_run = watcher.last_run.strftime("%Y-%m-%d %H:%M:%S") if watcher.last_run else "never"
    return (
        f"{watcher.id}  [{watcher.status.value}]  {watcher.query!r}  "
        f"schedule={watcher.schedule!r}{price}  runs={watcher.number_of_runs}  "
        f"last_run={last_run}  targets={len(watcher.notifications)}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Adwatch CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--db", help="Database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Watcher commands
    watcher_parser = subparsers.add_parser("watcher", help="Watcher management")
    watcher_subparsers = watcher_parser.add_subparsers(dest="action")

    add_parser = watcher_subparsers.add_parser("add", help="Add watcher")
    add_parser.add_argument("--query", required=True, help="Search text")
    add_parser.add_argument(
        "--schedule", default="*/5 * * * *", help="Cron expression"
    )
    add_parser.add_argument("--min-price", type=float, help="Lower price bound")
    add_parser.add_argument("--max-price", type=float, help="Upper price bound")
    add_parser.add_argument(
        "--discord", action="append", help="Discord webhook URL (repeatable)"
    )
    add_parser.add_argument("--email", action="append", help="Email address (repeatable)")

    watcher_subparsers.add_parser("list", help="List watchers")

    for action in ("pause", "resume", "delete", "run"):
        action_parser = watcher_subparsers.add_parser(action, help=f"{action.title()} watcher")
        action_parser.add_argument("id", help="Watcher ID")

    reschedule_parser = watcher_subparsers.add_parser(
        "reschedule", help="Change watcher schedule"
    )
    reschedule_parser.add_argument("id", help="Watcher ID")
    reschedule_parser.add_argument("schedule", help="New cron expression")

    # Settings commands
    settings_parser = subparsers.add_parser("settings", help="Search defaults")
    settings_subparsers = settings_parser.add_subparsers(dest="action")
    settings_subparsers.add_parser("list", help="List settings")
    set_parser = settings_subparsers.add_parser("set", help="Set a setting")
    set_parser.add_argument("key", choices=sorted(SETTING_KEYS))
    set_parser.add_argument("value")

    return parser


def run_command(app: AdwatchApp, args: argparse.Namespace) -> int:
    """Execute a parsed command. Returns the process exit code."""
    service = app.watchers

    if args.command == "watcher":
        if args.action == "add":
            watcher = service.create_watcher(
                query=args.query,
                schedule=args.schedule,
                notifications=parse_targets(args.discord, args.email),
                min_price=args.min_price,
                max_price=args.max_price,
            )
            print(f"Created watcher with ID: {watcher.id}")
        elif args.action == "list":
            for watcher in service.list_watchers():
                print(format_watcher(watcher))
        elif args.action == "pause":
            service.pause_watcher(args.id)
            print(f"Paused {args.id}")
        elif args.action == "resume":
            service.resume_watcher(args.id)
            print(f"Resumed {args.id}")
        elif args.action == "reschedule":
            service.reschedule_watcher(args.id, args.schedule)
            print(f"Rescheduled {args.id} to {args.schedule}")
        elif args.action == "delete":
            service.delete_watcher(args.id)
            print(f"Deleted {args.id}")
        elif args.action == "run":
            outcome = service.run_now(args.id)
            if outcome is None:
                print(f"Watcher {args.id} is already running")
            elif outcome.success:
                print(f"Run complete: {len(outcome.new_listings)} new listings")
            else:
                print(f"Run failed: {outcome.error}")
                return 1

    elif args.command == "settings":
        if args.action == "list":
            for setting in app.setting_repo.list_all():
                print(f"{setting.key}={setting.value}")
        elif args.action == "set":
            app.setting_repo.set_value(args.key, args.value)
            print(f"{args.key}={args.value}")

    return 0


def main():
    """CLI entry point."""
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.WARNING)

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        config = AppConfig()
    if args.db:
        config.database.path = args.db

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    # The scheduler is never started here; the daemon picks changes up on reconcile
    app = AdwatchApp(db=db, config=config)

    try:
        code = run_command(app, args)
    except AdwatchError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    finally:
        db.close()

    sys.exit(code)


if __name__ == "__main__":
    main()
