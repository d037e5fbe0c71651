"""
Command-line entrypoint.

Usage:
    python -m riksdag sync members [--batch-size 50] [--filter parti=S]
    python -m riksdag preview speeches --filter anf_datum_from=2024-01-01
    python -m riksdag plan                 # one strategic-plan pass
    python -m riksdag plan --scheduled     # same, honouring sync intervals
    python -m riksdag reset speeches       # rewind a cursor
    python -m riksdag status               # cursors and recent attempts
    python -m riksdag serve                # nightly scheduler, runs until Ctrl+C
    uvicorn riksdag.api.main:app --host 0.0.0.0 --port 8000  # HTTP API
"""
import argparse
import asyncio
import logging
import sys
from typing import Dict, List

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _parse_filters(pairs: List[str]) -> Dict[str, str]:
    filters = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Filter must look like key=value, got {pair!r}")
        filters[key] = value
    return filters


async def _run_request(request) -> int:
    from riksdag.opendata.sync_service import build_sync_service

    service = build_sync_service()
    try:
        response = await service.handle(request)
    finally:
        await service.client.aclose()
    print(response.model_dump_json(indent=2, exclude_none=True))
    return 0 if response.success else 1


def _print_status() -> int:
    from riksdag.db.engine import get_engine
    from riksdag.opendata.audit import AuditLog
    from riksdag.opendata.sync_state import SyncStateStore

    engine = get_engine()
    for c in SyncStateStore(engine).list_all():
        print(
            f"{c.resource_type:<10} offset={c.offset:<7} fetched={c.total_fetched:<7} "
            f"complete={c.is_complete!s:<5} retries={c.retry_count} "
            f"error={c.last_error or '-'}"
        )
    print()
    for a in AuditLog(engine).recent(limit=10):
        print(
            f"#{a.id:<5} {a.resource_type:<10} {a.status:<9} "
            f"{a.started_at:%Y-%m-%d %H:%M:%S} records={a.records_processed} "
            f"{a.error_message or ''}"
        )
    return 0


async def _serve() -> None:
    from riksdag.config import get_settings
    from riksdag.db.engine import get_engine
    from riksdag.scheduler.jobs import build_scheduler

    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (nightly plan at %02d:00 UTC)", get_settings().sync_hour
    )
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="riksdag", description="Riksdag open-data sync")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run one batch for a resource type")
    sync.add_argument("resource_type", help="members, speeches, documents, votes or all")
    sync.add_argument("--batch-size", type=int, default=None)
    sync.add_argument("--filter", action="append", default=[], metavar="KEY=VALUE")

    preview = sub.add_parser("preview", help="Print the next request without fetching it")
    preview.add_argument("resource_type")
    preview.add_argument("--batch-size", type=int, default=None)
    preview.add_argument("--filter", action="append", default=[], metavar="KEY=VALUE")

    plan = sub.add_parser("plan", help="Run one strategic-plan pass over all resource types")
    plan.add_argument("--filter", action="append", default=[], metavar="KEY=VALUE")
    plan.add_argument(
        "--scheduled",
        action="store_true",
        help="Apply per-type sync intervals, as the nightly job does",
    )

    reset = sub.add_parser("reset", help="Rewind a resource type's cursor")
    reset.add_argument("resource_type")

    sub.add_parser("status", help="Show cursors and recent attempts")
    sub.add_parser("serve", help="Run the nightly scheduler")
    return parser


def main(argv=None) -> int:
    from riksdag.models.trigger import SyncRequest

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        filters = _parse_filters(getattr(args, "filter", []))
    except ValueError as exc:
        parser.error(str(exc))

    if args.command in ("sync", "preview"):
        request = SyncRequest(
            resource_type=args.resource_type,
            batch_size=args.batch_size,
            filters=filters,
            preview=args.command == "preview",
        )
        return asyncio.run(_run_request(request))
    if args.command == "plan":
        request = SyncRequest(strategic_plan=True, filters=filters, manual=not args.scheduled)
        return asyncio.run(_run_request(request))
    if args.command == "reset":
        from riksdag.config import UnknownResourceTypeError, default_sync_config
        from riksdag.db.engine import get_engine
        from riksdag.opendata.sync_state import SyncStateStore

        try:
            resource = default_sync_config().resource(args.resource_type)
        except UnknownResourceTypeError as exc:
            parser.error(str(exc))
        cursor = SyncStateStore(get_engine()).reset(resource.resource_type)
        print(f"Reset {cursor.resource_type}")
        return 0
    if args.command == "status":
        return _print_status()
    asyncio.run(_serve())
    return 0


if __name__ == "__main__":
    sys.exit(main())
