#!/usr/bin/env python3
"""
Simple Update Checker - Command Line Interface
Track programs, check them for updates once or periodically and send push
notifications through ntfy.sh when updates are found.

Usage:
    check_updates.py add-program github -n NAME -r OWNER/REPO
    check_updates.py check [--set-current-version] [--allow-notification]
    check_updates.py run-timed -t TOPIC [-i SECONDS]

Exit codes: 0 = success, 1 = error
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from core.config import Config
from core.engine import UpdateEngine
from core.errors import UpdateCheckerError
from core.models import CheckOptions, UpdateCheckType, format_datetime
from core.notifications import NotificationDispatcher, NtfyChannel
from core.scheduler import UpdateScheduler
from core.store import ProgramStore
from providers import GithubProvider

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure root logging for the command line tool."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def format_table(headers: list[str], rows: list[list[str]]) -> str:
    """Render rows as a plain text table."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def line(cells):
        return " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    separator = "-+-".join("-" * w for w in widths)
    return "\n".join([line(headers), separator] + [line(row) for row in rows])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simple-update-checker",
        description=(
            "Simple program that can be used to automatically check for updates of programs. "
            "Optionally sends push notifications using ntfy.sh when an update is found."
        ),
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to a JSON config file")
    parser.add_argument(
        "-d", "--db-path",
        help="Path of the database containing the programs that should be checked for updates",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, help="Also write log output to this file")

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    add = commands.add_parser(
        "add-program",
        help="Add a program that should be checked for updates. "
             "Sets current and latest version to the latest version currently available.",
    )
    add_providers = add.add_subparsers(dest="provider", required=True, metavar="PROVIDER")
    github = add_providers.add_parser("github", help="Use GitHub releases as provider")
    github.add_argument("-n", "--name", required=True, help="Display name for the program")
    github.add_argument(
        "-r", "--repository", required=True,
        help="GitHub repository the latest version is taken from, e.g. owner/repo",
    )

    remove = commands.add_parser("remove-program", help="Stop checking a program for updates")
    remove.add_argument("-n", "--name", required=True, help="Name of the program")

    commands.add_parser("list-programs", help="List all programs that are checked for updates")

    check = commands.add_parser(
        "check",
        aliases=["run"],
        help="Check all programs once for updates. Does not send push notifications.",
    )
    check.add_argument(
        "--set-current-version", action="store_true",
        help="Mark found updates as applied right away",
    )
    check.add_argument(
        "--allow-notification", action="store_true",
        help="Still send a push notification for found updates on the next timed check",
    )

    run_timed = commands.add_parser(
        "run-timed",
        help="Periodically check all programs for updates and send push notifications",
    )
    run_timed.add_argument("-t", "--ntfy-topic", help="ntfy.sh topic notifications are published to")
    run_timed.add_argument("--ntfy-server", help="Base URL of the ntfy server")
    run_timed.add_argument("-i", "--check-interval", type=int, help="Seconds between update checks")

    update = commands.add_parser(
        "update", help="Mark the latest version of a program as installed",
    )
    target = update.add_mutually_exclusive_group(required=True)
    target.add_argument("-n", "--name", help="Name of the program")
    target.add_argument("-a", "--all", action="store_true", help="Update all programs")

    history = commands.add_parser("history", help="Show past update checks or performed updates")
    history.add_argument("kind", choices=["checks", "updates"])
    history.add_argument(
        "-m", "--max-entries", type=int, default=100, help="Number of entries to show",
    )

    return parser


def cmd_add_program(args, config: Config, store: ProgramStore) -> int:
    engine = UpdateEngine(store, config.github_access_token)
    try:
        provider = GithubProvider(args.repository)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    program = engine.add_program(args.name, provider)
    print(f"Program {program.name} successfully added at version {program.latest_version}!")
    return 0


def cmd_remove_program(args, config: Config, store: ProgramStore) -> int:
    if UpdateEngine(store).remove_program(args.name):
        print(f"Program {args.name} has been removed from the database.")
    else:
        print(f"Program {args.name} did not exist in database.")
    return 0


def cmd_list_programs(args, config: Config, store: ProgramStore) -> int:
    programs = store.get_all_programs()
    if not programs:
        print("No programs are checked for updates.")
        return 0
    rows = [
        [
            p.name,
            p.current_version,
            format_datetime(p.current_version_last_updated),
            p.latest_version,
            format_datetime(p.latest_version_last_updated),
            f"{p.provider.identifier}: {p.provider.describe()}",
        ]
        for p in programs
    ]
    print(format_table(
        ["Name", "Current version", "Updated", "Latest version", "Found", "Provider"], rows,
    ))
    latest_check = store.get_latest_update_check()
    if latest_check:
        print(f"\nLast update check: {format_datetime(latest_check.date)} ({latest_check.type.value})")
    return 0


def cmd_check(args, config: Config, store: ProgramStore) -> int:
    engine = UpdateEngine(store, config.github_access_token)
    options = CheckOptions(
        set_current_version=args.set_current_version,
        allow_notification=args.allow_notification,
    )
    updates = engine.check_for_updates(UpdateCheckType.MANUAL, options)
    if not updates:
        print("All programs are up to date.")
        return 0
    print("Updates available:")
    for program in updates:
        print(f"  {program.name}: {program.current_version} -> {program.latest_version}")
    return 0


def cmd_run_timed(args, config: Config, store: ProgramStore) -> int:
    engine = UpdateEngine(store, config.github_access_token)
    dispatcher = NotificationDispatcher(store, NtfyChannel(config.ntfy_server))
    scheduler = UpdateScheduler(
        store, engine, dispatcher, config.check_interval, config.ntfy_topic,
    )
    scheduler.run()
    return 0


def cmd_update(args, config: Config, store: ProgramStore) -> int:
    engine = UpdateEngine(store)
    if args.all:
        entries = engine.apply_all_updates()
    else:
        entry = engine.apply_update(args.name)
        entries = [entry] if entry else []
    if not entries:
        print("Nothing to update.")
    for entry in entries:
        print(f"{entry.name}: {entry.old_version} -> {entry.updated_to}")
    return 0


def cmd_history(args, config: Config, store: ProgramStore) -> int:
    if args.kind == "checks":
        checks = store.get_all_update_checks(args.max_entries)
        rows = [
            [format_datetime(c.date), c.type.value, str(c.updates_available), c.programs]
            for c in checks
        ]
        print(format_table(["Date", "Type", "Updates", "Programs"], rows))
    else:
        updates = store.get_all_updates(args.max_entries)
        rows = [
            [format_datetime(u.date), u.name, u.old_version, u.updated_to] for u in updates
        ]
        print(format_table(["Date", "Name", "Old version", "Updated to"], rows))
    return 0


COMMANDS = {
    "add-program": cmd_add_program,
    "remove-program": cmd_remove_program,
    "list-programs": cmd_list_programs,
    "check": cmd_check,
    "run": cmd_check,
    "run-timed": cmd_run_timed,
    "update": cmd_update,
    "history": cmd_history,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point of the command line tool."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        config = Config.load(
            args.config,
            overrides={
                "db_path": args.db_path,
                "ntfy_topic": getattr(args, "ntfy_topic", None),
                "ntfy_server": getattr(args, "ntfy_server", None),
                "check_interval": getattr(args, "check_interval", None),
            },
        )
        with ProgramStore.connect(config.db_path) as store:
            return COMMANDS[args.command](args, config, store)
    except UpdateCheckerError as e:
        logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
