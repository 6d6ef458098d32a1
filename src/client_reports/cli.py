"""Command-line interface for Client Reports.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from client_reports.config import Settings, get_settings
from client_reports.db import ensure_schema
from client_reports.exceptions import ClientReportsError, StorageError
from client_reports.logging_setup import configure_logging
from client_reports.models import EmailFetchParams
from client_reports.services import build_services
from client_reports.tasks import TaskStatus, TaskType

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="client-reports", description="Client Reports")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create tables, apply migrations and the vector collection")

    fetch_parser = subparsers.add_parser("fetch", help="Fetch client emails for a date range")
    fetch_parser.add_argument("--start", required=True, help="Start date (ISO-8601)")
    fetch_parser.add_argument("--end", required=True, help="End date (ISO-8601; date-only = whole day)")
    fetch_parser.add_argument("--client-id", default=None, help="Load domains/emails from a stored client")
    fetch_parser.add_argument(
        "--domain", dest="domains", action="append", default=[], help="Client domain (repeatable)"
    )
    fetch_parser.add_argument(
        "--email", dest="emails", action="append", default=[], help="Client address (repeatable)"
    )
    fetch_parser.add_argument("--max-results", type=int, default=None)
    fetch_parser.add_argument("--query", default=None, help="Free-text query for similarity search")
    fetch_parser.add_argument("--similarity", action="store_true", help="Use similarity search")
    fetch_parser.add_argument("--skip-provider", action="store_true", help="Local data only")
    fetch_parser.add_argument("--exclude-service", action="store_true", help="Drop automated emails")
    fetch_parser.add_argument("--user-email", default=None, help="Mailbox owner address")

    process_parser = subparsers.add_parser("process", help="Run a background job to completion")
    process_parser.add_argument(
        "task_type",
        choices=[t.value for t in TaskType],
        help="Job to run",
    )
    process_parser.add_argument("--limit", type=int, default=None)
    process_parser.add_argument("--batch-size", type=int, default=None)
    process_parser.add_argument(
        "--id", dest="ids", action="append", default=[], help="Message id (repeatable)"
    )

    return parser


async def _cmd_init_db(settings: Settings) -> int:
    services = build_services(settings)
    try:
        applied = ensure_schema(services.engine)
        try:
            services.store.ensure_collection()
        except StorageError as exc:
            logger.warning("vector_collection_unavailable", error=str(exc)[:150])
            print(f"Vector collection not ready: {exc}")
    finally:
        await services.aclose()

    print(f"Schema ready ({len(applied)} migrations applied)")
    return 0


async def _cmd_fetch(settings: Settings, args: argparse.Namespace) -> int:
    services = build_services(settings)
    try:
        domains = list(args.domains)
        emails = list(args.emails)
        if args.client_id:
            client = services.clients.get(args.client_id, args.user_email)
            if client is None:
                print(f"Client {args.client_id} not found")
                return 1
            domains += client.domains
            emails += client.emails

        params = EmailFetchParams.build(
            start_date=args.start,
            end_date=args.end,
            client_domains=domains,
            client_emails=emails,
            max_results=args.max_results or settings.email_fetch_limit,
            search_query=args.query,
            use_similarity_search=args.similarity,
            skip_provider=args.skip_provider,
            user_email=args.user_email,
            exclude_service_emails=args.exclude_service,
        )

        services.queue.start()
        result = await services.orchestrator.get_client_emails(params)
        await services.queue.wait_idle()
    finally:
        await services.aclose()

    for m in result.emails:
        source = m.source.value if m.source else "-"
        print(f"{m.date}\t{source}\t{m.from_address}\t{m.subject}")

    origin = "local + mailbox" if result.from_external_provider else "local"
    print(f"\n{len(result.emails)} emails ({origin})")
    if result.error:
        print(f"Warning: {result.error}")
    return 0


async def _cmd_process(settings: Settings, args: argparse.Namespace) -> int:
    services = build_services(settings)
    try:
        params: dict[str, object] = {}
        if args.limit:
            params["limit"] = args.limit
        if args.batch_size:
            params["batch_size"] = args.batch_size
        if args.ids:
            params["email_ids"] = list(args.ids)

        services.queue.start()
        task_id = services.queue.enqueue(args.task_type, params)
        await services.queue.wait_idle()
        task = services.queue.get_task(task_id)
    finally:
        await services.aclose()

    if task is None:
        print(f"Task {task_id} was dropped")
        return 1
    print(f"{task.type.value}: {task.status.value}")
    if task.result is not None:
        print(task.result)
    if task.error:
        print(f"Error: {task.error}")
    return 0 if task.status is TaskStatus.COMPLETED else 1


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Client Reports CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("client_reports_started", version="0.1.0", debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "init-db":
            return asyncio.run(_cmd_init_db(settings))
        if parsed.command == "fetch":
            return asyncio.run(_cmd_fetch(settings, parsed))
        if parsed.command == "process":
            return asyncio.run(_cmd_process(settings, parsed))
    except ClientReportsError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc)[:150])
        print(f"Error: {exc}")
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
