"""Command-line entry point for SDIS Alerts."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from sdis_alerts.classifiers import ExpirySweeper, OperationClassifier, PowerClassifier
from sdis_alerts.core import (
    AppSettings,
    ServiceContainer,
    configure_logging,
    load_app_settings,
)
from sdis_alerts.ingestion import MailPoller
from sdis_alerts.wiring import OPERATIONS, POLLER, POWER, SWEEPER, build_container


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="SDIS alert mailbox monitor")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "poll", "sweep"],
        help="Operation to execute.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    command = args.command
    if command == "info":
        print("SDIS Alerts is ready.")
        print(f"IMAP host: {settings.imap.host}:{settings.imap.port}")
        print(f"Mailbox: {settings.imap.mailbox}")
        print(f"Scan interval: {settings.polling.interval_seconds}s")
        print(f"Database path: {settings.storage.db_path}")
        return 0
    container = build_container(settings)
    if command == "poll":
        return asyncio.run(_run_poll(container))
    if command == "sweep":
        sweeper: ExpirySweeper = container.resolve(SWEEPER)
        print(f"Resolved {sweeper.sweep()} operation(s).")
        asyncio.run(container.aclose())
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


async def _run_poll(container: ServiceContainer) -> int:
    try:
        return await _poll_and_report(container)
    finally:
        await container.aclose()


async def _poll_and_report(container: ServiceContainer) -> int:
    """Run one scan cycle followed by an expiry sweep and print the histories."""
    poller: MailPoller = container.resolve(POLLER)
    report = await poller.run_cycle()
    if report.error:
        print(f"Scan failed: {report.error}")
        return 1

    sweeper: ExpirySweeper = container.resolve(SWEEPER)
    resolved = sweeper.sweep()
    print(
        f"Matched {report.matched} message(s): parsed {report.parsed}, "
        f"failed {report.failed}. Resolved {resolved} operation(s)."
    )

    power: PowerClassifier = container.resolve(POWER)
    print(f"\nUPS events ({len(power.list_events())}):")
    for event in power.list_events():
        print(f"  [{event.type.value:<14}] {event.event or '-'}  {event.timestamp}")

    operations: OperationClassifier = container.resolve(OPERATIONS)
    print(f"\nRadio-network notices ({len(operations.list_events())}):")
    for notice in operations.list_events():
        status = notice.status.value if notice.status else "-"
        print(
            f"  [{notice.kind.value:<14}] #{notice.operation_number or '?'}"
            f"  {notice.site_name or '-'}  {notice.window or '-'}  {status}"
        )
    return 0


if __name__ == "__main__":
    main()
