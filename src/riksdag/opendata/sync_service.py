"""
BatchSyncService: drives incremental fetch → normalize → upsert cycles.

Flow for a single cycle (run_cycle):
  1. Load the resource's SyncCursor; a complete cursor returns zero work
     without touching the network (reset() re-opens it)
  2. Pick a batch size (caller-pinned, or adaptive from latency / errors),
     shrunk to a divisor of the offset so the page boundary lands on it
  3. Build the page URL and fetch it through RiksdagClient
  4. Empty page → mark the cursor complete
  5. Normalize items and upsert them by natural key
  6. Advance the cursor in the same transaction as the upserts
  7. Close the SyncAttempt row (status="completed")

On any exception from steps 3-6: the SyncAttempt is marked failed, the
cursor gets last_error / retry_count += 1, and the exception is re-raised.
A cancelled cycle marks the attempt failed but leaves the cursor untouched.

run_strategic_plan() runs one cycle per resource type in priority order,
capturing per-phase errors instead of aborting. Disabled types never run.
A manual plan skips complete types; a scheduled plan (manual=False) rewinds
a complete type once its sync_interval_hours have passed and skips it
otherwise.
"""
import asyncio
import contextlib
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from sqlmodel import Session, SQLModel, select

from riksdag.config import ResourceType, SyncConfig
from riksdag.models.parliament import Assignment, Document, Member, Speech, VoteRecord
from riksdag.models.sync import SyncCursor
from riksdag.models.trigger import SyncRequest, SyncResponse
from riksdag.opendata.audit import AuditLog
from riksdag.opendata.normalizer import map_payload
from riksdag.opendata.sync_state import SyncStateStore
from riksdag.opendata.urls import build_url
from riksdag.resilience.batch_sizing import aligned_batch_size, compute_batch_size

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Sync cancelled"

# PhaseResult.skip_reason values
SKIP_DISABLED = "disabled"
SKIP_COMPLETE = "complete"
SKIP_NOT_DUE = "not due"

# Model and natural-key columns per resource type.
RESOURCE_MODELS: Dict[ResourceType, Tuple[Type[SQLModel], Tuple[str, ...]]] = {
    ResourceType.MEMBERS: (Member, ("member_id",)),
    ResourceType.SPEECHES: (Speech, ("document_id", "sequence")),
    ResourceType.DOCUMENTS: (Document, ("document_id",)),
    ResourceType.VOTES: (VoteRecord, ("vote_id", "member_id")),
}
ASSIGNMENT_KEY = ("member_id", "organ_code", "role_code", "start_date")


class SyncCancelledError(Exception):
    """The cancel signal fired before the cycle committed."""


@dataclass
class CycleResult:
    resource_type: str
    records_processed: int
    is_complete: bool
    total_fetched: int
    offset: int
    batch_size: int
    skipped: int = 0


@dataclass
class PhaseResult:
    resource_type: str
    success: bool
    records_processed: int = 0
    is_complete: bool = False
    skipped: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PlanSummary:
    total_processed: int = 0
    phases: List[PhaseResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(p.success for p in self.phases)


@dataclass
class PreviewResult:
    resource_type: str
    url: str
    batch_size: int
    current_offset: int
    filters: Dict[str, Any]
    priority: int
    default_batch_size: int
    max_batch_size: int
    estimated_total: int


class BatchSyncService:
    """Orchestrates Riksdag API → DB sync, one resource type per cycle."""

    def __init__(
        self,
        client,
        engine,
        config: SyncConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: RiksdagClient instance (or AsyncMock in tests); only
                fetch_json(url) is used.
            engine: SQLAlchemy engine with cursors already seeded.
            config: Immutable resource table and plan settings.
            sleep: Awaitable used for the inter-phase delay.
        """
        self.client = client
        self.engine = engine
        self.config = config
        self.state = SyncStateStore(engine)
        self.audit = AuditLog(engine)
        self._sleep = sleep
        self._last_latency: Dict[ResourceType, float] = {}

    # ─── Batch sizing / preview ───────────────────────────────────────────────

    def next_batch_size(self, resource_type, cursor: Optional[SyncCursor] = None) -> int:
        """Adaptive batch size from the last latency and the cursor's retry count."""
        resource = self.config.resource(resource_type)
        cursor = cursor or self.state.get(resource.resource_type)
        return compute_batch_size(
            resource,
            self._last_latency.get(resource.resource_type),
            cursor.retry_count,
            fast_response_seconds=self.config.fast_response_seconds,
            slow_response_seconds=self.config.slow_response_seconds,
            error_floor_threshold=self.config.error_floor_threshold,
        )

    def _page_size(self, rt: ResourceType, cursor: SyncCursor, pinned: Optional[int]) -> int:
        wanted = pinned or self.next_batch_size(rt, cursor)
        size = aligned_batch_size(cursor.offset, wanted)
        if size != wanted:
            logger.info(
                "%s: batch %d does not divide offset %d; using %d",
                rt.value, wanted, cursor.offset, size,
            )
        return size

    def preview(
        self,
        resource_type,
        filters: Optional[Dict[str, Any]] = None,
        batch_size: Optional[int] = None,
    ) -> PreviewResult:
        """Compute the next request for a resource without fetching it."""
        resource = self.config.resource(resource_type)
        cursor = self.state.get(resource.resource_type)
        size = self._page_size(resource.resource_type, cursor, batch_size)
        return PreviewResult(
            resource_type=resource.resource_type.value,
            url=build_url(resource.resource_type, filters, cursor.offset, size, self.config),
            batch_size=size,
            current_offset=cursor.offset,
            filters=dict(filters or {}),
            priority=resource.priority,
            default_batch_size=resource.default_batch_size,
            max_batch_size=resource.max_batch_size,
            estimated_total=resource.estimated_total,
        )

    def reset(self, resource_type) -> SyncCursor:
        return self.state.reset(self.config.resource(resource_type).resource_type)

    # ─── Single cycle ─────────────────────────────────────────────────────────

    async def run_cycle(
        self,
        resource_type,
        filters: Optional[Dict[str, Any]] = None,
        batch_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CycleResult:
        """
        Fetch, normalize and upsert one page for a resource type.

        Args:
            resource_type: ResourceType or its string value.
            filters: Extra query filters passed to build_url().
            batch_size: Pin the page size instead of computing it.
            cancel_event: Optional signal; when set before the cycle commits,
                the cycle aborts with SyncCancelledError.

        Returns:
            CycleResult with the processed count and the updated cursor totals.

        Raises:
            UnknownResourceTypeError: resource_type is not configured.
            SyncCancelledError: cancel_event fired.
            Any client or storage exception (after recording the failure).
        """
        resource = self.config.resource(resource_type)
        rt = resource.resource_type
        cursor = self.state.get(rt)

        if cursor.is_complete:
            logger.info("%s already complete; nothing to do", rt.value)
            return CycleResult(
                resource_type=rt.value,
                records_processed=0,
                is_complete=True,
                total_fetched=cursor.total_fetched,
                offset=cursor.offset,
                batch_size=0,
            )

        size = self._page_size(rt, cursor, batch_size)
        url = build_url(rt, filters, cursor.offset, size, self.config)
        attempt = self.audit.start(rt.value)
        logger.info("Sync %s: offset=%d batch=%d", rt.value, cursor.offset, size)

        try:
            self._raise_if_cancelled(cancel_event)
            fetched = await self._await_cancellable(self.client.fetch_json(url), cancel_event)
            self._last_latency[rt] = fetched.latency

            mapping = map_payload(rt, fetched.payload, self.config)
            if not mapping.records and not mapping.skipped:
                cursor = self.state.mark_complete(rt)
                logger.info("%s returned an empty page; marked complete", rt.value)
            else:
                self._raise_if_cancelled(cancel_event)
                cursor = self._commit_batch(rt, mapping.records, size)

        except (asyncio.CancelledError, SyncCancelledError):
            logger.warning("Sync %s cancelled; cursor left at offset %d", rt.value, cursor.offset)
            self.audit.fail(attempt, CANCELLED_MESSAGE)
            raise
        except Exception as exc:
            logger.error("Sync %s failed: %s", rt.value, exc)
            self.audit.fail(attempt, str(exc) or exc.__class__.__name__)
            self.state.record_failure(rt, str(exc) or exc.__class__.__name__)
            raise

        processed = len(mapping.records)
        self.audit.complete(attempt, processed)
        logger.info(
            "Sync %s: %d records (%d skipped), complete=%s",
            rt.value, processed, mapping.skipped, cursor.is_complete,
        )
        return CycleResult(
            resource_type=rt.value,
            records_processed=processed,
            is_complete=cursor.is_complete,
            total_fetched=cursor.total_fetched,
            offset=cursor.offset,
            batch_size=size,
            skipped=mapping.skipped,
        )

    # ─── Strategic plan ───────────────────────────────────────────────────────

    async def run_strategic_plan(
        self,
        filters: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        manual: bool = True,
    ) -> PlanSummary:
        """
        Run one cycle per resource type, lowest priority number first.

        Disabled and complete resource types are reported as skipped. With
        manual=False (the scheduler) a complete type whose sync interval has
        elapsed is reset and synced again from the first page. A failing
        phase is recorded in its PhaseResult and the plan moves on;
        cancellation stops the whole plan.
        """
        summary = PlanSummary()
        ran_phase = False
        now = datetime.utcnow()

        for resource in self.config.by_priority():
            rt = resource.resource_type
            cursor = self.state.get(rt)
            reason = self._skip_reason(resource, cursor, manual, now)
            if reason is not None:
                logger.info("Plan: skipping %s (%s)", rt.value, reason)
                summary.phases.append(
                    PhaseResult(
                        resource_type=rt.value,
                        success=True,
                        is_complete=cursor.is_complete,
                        skipped=True,
                        skip_reason=reason,
                    )
                )
                continue
            if cursor.is_complete:
                logger.info(
                    "Plan: %s last synced %s; starting refresh pass", rt.value, cursor.last_sync_at
                )
                self.state.reset(rt)

            if ran_phase and self.config.inter_phase_delay_seconds > 0:
                await self._sleep(self.config.inter_phase_delay_seconds)
            ran_phase = True

            try:
                result = await self.run_cycle(rt, filters=filters, cancel_event=cancel_event)
            except SyncCancelledError:
                raise
            except Exception as exc:
                summary.phases.append(
                    PhaseResult(resource_type=rt.value, success=False, error=str(exc) or exc.__class__.__name__)
                )
                continue

            summary.total_processed += result.records_processed
            summary.phases.append(
                PhaseResult(
                    resource_type=rt.value,
                    success=True,
                    records_processed=result.records_processed,
                    is_complete=result.is_complete,
                )
            )

        logger.info(
            "Strategic plan finished: %d records across %d phases",
            summary.total_processed, len(summary.phases),
        )
        return summary

    def _skip_reason(self, resource, cursor: SyncCursor, manual: bool, now: datetime) -> Optional[str]:
        """Why a plan phase should not run, or None when it is due."""
        if not resource.enabled:
            return SKIP_DISABLED
        if not cursor.is_complete:
            return None
        if manual:
            return SKIP_COMPLETE
        if cursor.last_sync_at is None:
            return None
        fresh_for = timedelta(hours=resource.sync_interval_hours) - timedelta(
            minutes=self.config.schedule_grace_minutes
        )
        if now - cursor.last_sync_at < fresh_for:
            return SKIP_NOT_DUE
        return None

    # ─── Trigger dispatch ─────────────────────────────────────────────────────

    async def handle(
        self, request: SyncRequest, cancel_event: Optional[asyncio.Event] = None
    ) -> SyncResponse:
        """Serve one inbound trigger and translate the outcome to a SyncResponse."""
        try:
            if request.preview:
                preview = self.preview(request.resource_type, request.filters, request.batch_size)
                return SyncResponse(
                    success=True,
                    url=preview.url,
                    batch_size=preview.batch_size,
                    offset=preview.current_offset,
                )

            if request.strategic_plan or request.resource_type == "all":
                summary = await self.run_strategic_plan(
                    request.filters, cancel_event, manual=request.manual
                )
                errors = [f"{p.resource_type}: {p.error}" for p in summary.phases if p.error]
                return SyncResponse(
                    success=summary.success,
                    records_processed=summary.total_processed,
                    is_complete=all(p.is_complete for p in summary.phases),
                    error="; ".join(errors) or None,
                    phases=[asdict(p) for p in summary.phases],
                )

            result = await self.run_cycle(
                request.resource_type, request.filters, request.batch_size, cancel_event
            )
            return SyncResponse(
                success=True,
                records_processed=result.records_processed,
                is_complete=result.is_complete,
                total_fetched=result.total_fetched,
            )
        except Exception as exc:
            logger.exception("Sync request failed: %s", request)
            return SyncResponse(success=False, error=str(exc) or exc.__class__.__name__)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _commit_batch(
        self, rt: ResourceType, records: List[Dict[str, Any]], requested: int
    ) -> SyncCursor:
        """Upsert every record and advance the cursor in one transaction."""
        model, key_fields = RESOURCE_MODELS[rt]
        with Session(self.engine) as s:
            for record in records:
                fields = dict(record)
                children = fields.pop("assignments", [])
                self._upsert(s, model, key_fields, fields)
                for child in children:
                    self._upsert(s, Assignment, ASSIGNMENT_KEY, child)
            cursor = self.state.advance_cursor(s, rt, len(records), requested)
            s.commit()
            s.refresh(cursor)
            s.expunge(cursor)
        return cursor

    @staticmethod
    def _upsert(
        session: Session,
        model: Type[SQLModel],
        key_fields: Tuple[str, ...],
        fields: Dict[str, Any],
    ) -> None:
        existing = session.exec(
            select(model).where(*[getattr(model, k) == fields[k] for k in key_fields])
        ).first()
        if hasattr(model, "synced_at"):
            fields["synced_at"] = datetime.utcnow()
        if existing:
            # Update in place (keeps same id); only fields the mapper produced
            for k, v in fields.items():
                setattr(existing, k, v)
            session.add(existing)
        else:
            session.add(model(**fields))

    @staticmethod
    def _raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError(CANCELLED_MESSAGE)

    @staticmethod
    async def _await_cancellable(awaitable, cancel_event: Optional[asyncio.Event]):
        """Await `awaitable`, aborting with SyncCancelledError if the event fires first."""
        if cancel_event is None:
            return await awaitable

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await work

        if work in done:
            return work.result()
        raise SyncCancelledError(CANCELLED_MESSAGE)


def build_sync_service(engine=None, settings=None) -> BatchSyncService:
    """Wire a BatchSyncService with a real RiksdagClient from settings."""
    from riksdag.config import default_sync_config, get_settings
    from riksdag.db.engine import get_engine
    from riksdag.opendata.client import RiksdagClient

    settings = settings or get_settings()
    config = default_sync_config(
        settings.api_base_url,
        settings.inter_phase_delay_seconds,
        disabled=settings.disabled_resource_types,
    )
    client = RiksdagClient.from_settings(settings, config)
    return BatchSyncService(client=client, engine=engine or get_engine(), config=config)
