"""
Integration tests for BatchSyncService.

Uses AsyncMock for the Riksdag client and an in-memory SQLite DB.
No real network calls are made.
"""
import asyncio
import json
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qsl, urlsplit

import pytest
from sqlmodel import Session, select

from riksdag.config import ResourceType, default_sync_config
from riksdag.models.parliament import Assignment, Document, Member, Speech, VoteRecord
from riksdag.models.sync import SyncAttempt, SyncCursor
from riksdag.models.trigger import SyncRequest
from riksdag.opendata.client import FetchResult
from riksdag.opendata.sync_service import (
    CANCELLED_MESSAGE,
    BatchSyncService,
    SyncCancelledError,
    SKIP_COMPLETE,
    SKIP_DISABLED,
    SKIP_NOT_DUE,
)
from riksdag.opendata.urls import build_url
from riksdag.resilience.errors import ClientResponseError, RetryExhaustedError

FIXTURES = Path(__file__).parent.parent / "fixtures"


def _load(name):
    return json.loads((FIXTURES / name).read_text(encoding="utf-8"))


PERSONLISTA = _load("riksdag_personlista.json")
ANFORANDELISTA = _load("riksdag_anforandelista.json")
DOKUMENTLISTA = _load("riksdag_dokumentlista.json")
VOTERINGLISTA = _load("riksdag_voteringlista.json")

PAYLOADS = {
    "personlista": PERSONLISTA,
    "anforandelista": ANFORANDELISTA,
    "dokumentlista": DOKUMENTLISTA,
    "voteringlista": VOTERINGLISTA,
}


def fetched(payload, latency=2.0):
    return FetchResult(url="https://api.test/", payload=payload, status_code=200,
                       latency=latency, attempts=1)


def make_mock_client(payload=None, side_effect=None):
    client = AsyncMock()
    if side_effect is not None:
        client.fetch_json = AsyncMock(side_effect=side_effect)
    else:
        client.fetch_json = AsyncMock(return_value=fetched(payload))
    return client


def route_by_endpoint(overrides=None):
    """fetch_json side effect that answers each endpoint with its fixture."""
    overrides = overrides or {}

    async def _fetch(url):
        for endpoint, payload in PAYLOADS.items():
            if f"/{endpoint}/" in url:
                result = overrides.get(endpoint, payload)
                if isinstance(result, Exception):
                    raise result
                return fetched(result)
        raise AssertionError(f"unexpected url {url}")

    return _fetch


def _attempts(engine):
    with Session(engine) as s:
        return s.exec(select(SyncAttempt).order_by(SyncAttempt.id)).all()


def _count(engine, model):
    with Session(engine) as s:
        return len(s.exec(select(model)).all())


# ─── Single cycle ─────────────────────────────────────────────────────────────

class TestRunCycle:
    async def test_members_page_persisted(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        result = await service.run_cycle("members", batch_size=100)

        assert result.records_processed == 2
        assert result.is_complete is True  # 2 < 100
        assert result.total_fetched == 2
        assert _count(engine, Member) == 2
        assert _count(engine, Assignment) == 3
        with Session(engine) as s:
            erik = s.exec(select(Member).where(Member.member_id == "0218878014918")).one()
        assert erik.party == "S"
        assert erik.synced_at is not None

    async def test_full_page_is_not_complete(self, engine, sync_config):
        """A page exactly the requested size leaves the cursor open."""
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        result = await service.run_cycle("members", batch_size=2)

        assert result.records_processed == 2
        assert result.is_complete is False
        assert service.state.get(ResourceType.MEMBERS).offset == 2

    async def test_next_cycle_requests_next_page(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        await service.run_cycle("members", batch_size=2)
        await service.run_cycle("members", batch_size=2)

        second_url = client.fetch_json.await_args_list[1].args[0]
        assert second_url == build_url("members", None, 2, 2, sync_config)
        assert "p=2" in second_url

    async def test_empty_page_marks_complete(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        await service.run_cycle("members", batch_size=2)

        client.fetch_json.return_value = fetched({"personlista": {"@antal": "0", "person": None}})
        result = await service.run_cycle("members", batch_size=2)

        assert result.records_processed == 0
        assert result.is_complete is True
        cursor = service.state.get(ResourceType.MEMBERS)
        assert cursor.is_complete is True
        assert cursor.offset == 2
        assert _attempts(engine)[-1].status == "completed"

    async def test_empty_personlista_on_first_call(self, engine, sync_config):
        service = BatchSyncService(make_mock_client({}), engine, sync_config)
        result = await service.run_cycle("members")

        assert result.records_processed == 0
        assert result.is_complete is True
        assert _count(engine, Member) == 0

    async def test_complete_cursor_short_circuits(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        service.state.mark_complete(ResourceType.MEMBERS)

        result = await service.run_cycle("members")

        assert result.records_processed == 0
        assert result.is_complete is True
        client.fetch_json.assert_not_awaited()
        assert _attempts(engine) == []

    async def test_upsert_is_idempotent(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        await service.run_cycle("members", batch_size=100)
        service.reset("members")

        changed = json.loads(json.dumps(PERSONLISTA))
        changed["personlista"]["person"][0]["parti"] = "V"
        client.fetch_json.return_value = fetched(changed)
        await service.run_cycle("members", batch_size=100)

        assert _count(engine, Member) == 2
        assert _count(engine, Assignment) == 3
        with Session(engine) as s:
            erik = s.exec(select(Member).where(Member.member_id == "0218878014918")).one()
        assert erik.party == "V"

    async def test_skipped_items_not_counted(self, engine, sync_config):
        payload = {"personlista": {"person": [{"intressent_id": "1"}, {"efternamn": "Utan id"}]}}
        service = BatchSyncService(make_mock_client(payload), engine, sync_config)
        result = await service.run_cycle("members", batch_size=2)

        assert result.records_processed == 1
        assert result.skipped == 1
        assert result.is_complete is True  # 1 < 2
        assert service.state.get(ResourceType.MEMBERS).offset == 1

    async def test_speeches_documents_votes(self, engine, sync_config):
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint()), engine, sync_config
        )
        await service.run_cycle("speeches", batch_size=40)
        await service.run_cycle("documents", batch_size=50)
        await service.run_cycle("votes", batch_size=75)

        assert _count(engine, Speech) == 3
        assert _count(engine, Document) == 2
        assert _count(engine, VoteRecord) == 2
        with Session(engine) as s:
            keys = s.exec(select(Speech.document_id, Speech.sequence).order_by(Speech.sequence)).all()
        assert [tuple(k) for k in keys] == [("HA0910", 1), ("HA0910", 2), ("HA0910", 3)]

    async def test_speech_and_document_details_stored(self, engine, sync_config):
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint()), engine, sync_config
        )
        await service.run_cycle("speeches")
        await service.run_cycle("documents")

        with Session(engine) as s:
            speech = s.exec(select(Speech).where(Speech.sequence == 1)).one()
            doc = s.exec(select(Document).where(Document.document_id == "HB01FiU1")).one()
        assert speech.subject.startswith("Svar på interpellation")
        assert speech.speech_type == "Nej"
        assert "Fru talman!" in speech.text
        assert doc.hangar_id == "5166213"
        assert doc.related_id == "HA031"
        assert doc.pdf_url.startswith("https://data.riksdagen.se/fil/")

    async def test_attempt_logged(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        await service.run_cycle("members", batch_size=100)

        attempts = _attempts(engine)
        assert len(attempts) == 1
        assert attempts[0].status == "completed"
        assert attempts[0].records_processed == 2
        assert attempts[0].completed_at is not None

    async def test_unknown_resource_type(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        with pytest.raises(ValueError, match="Unknown resource type"):
            await service.run_cycle("committees")


# ─── Failures ─────────────────────────────────────────────────────────────────

class TestRunCycleFailures:
    async def test_failure_recorded_on_cursor(self, engine, sync_config):
        client = make_mock_client(side_effect=RetryExhaustedError("HTTP 503 after 4 attempts", attempts=4))
        service = BatchSyncService(client, engine, sync_config)

        with pytest.raises(RetryExhaustedError):
            await service.run_cycle("members")

        cursor = service.state.get(ResourceType.MEMBERS)
        assert cursor.offset == 0
        assert cursor.retry_count == 1
        assert "503" in cursor.last_error
        attempt = _attempts(engine)[-1]
        assert attempt.status == "failed"
        assert "503" in attempt.error_message

    async def test_failures_shrink_next_batch(self, engine, sync_config):
        client = make_mock_client(side_effect=ClientResponseError(413, "https://api.test/"))
        service = BatchSyncService(client, engine, sync_config)
        assert service.next_batch_size("members") == 100

        with pytest.raises(ClientResponseError):
            await service.run_cycle("members")

        assert service.next_batch_size("members") == 50

    async def test_fast_response_grows_next_batch(self, engine, sync_config):
        client = AsyncMock()
        client.fetch_json = AsyncMock(return_value=fetched(PERSONLISTA, latency=0.2))
        service = BatchSyncService(client, engine, sync_config)
        await service.run_cycle("members", batch_size=2)

        assert service.next_batch_size("members") == 150

    async def test_success_after_failure_resets_retry_count(self, engine, sync_config):
        client = make_mock_client(side_effect=[RetryExhaustedError("down", attempts=6), fetched(PERSONLISTA)])
        service = BatchSyncService(client, engine, sync_config)
        with pytest.raises(RetryExhaustedError):
            await service.run_cycle("members", batch_size=100)
        await service.run_cycle("members", batch_size=100)

        cursor = service.state.get(ResourceType.MEMBERS)
        assert cursor.retry_count == 0
        assert cursor.last_error is None
        assert cursor.total_fetched == 2

    @pytest.mark.parametrize("payload", [{"personlista": {"person": []}}, PERSONLISTA])
    async def test_audit_write_error_not_masked(self, engine, sync_config, payload):
        service = BatchSyncService(make_mock_client(payload), engine, sync_config)
        service.audit.complete = MagicMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(RuntimeError, match="disk full"):
            await service.run_cycle("members", batch_size=100)

        assert service.state.get(ResourceType.MEMBERS).is_complete is True
        assert service.state.get(ResourceType.MEMBERS).retry_count == 0
        assert _attempts(engine)[0].status == "running"


# ─── Pagination ───────────────────────────────────────────────────────────────

class PagedMembersApi:
    """Serves a fixed member list by page number, like personlista does."""

    def __init__(self, total, latencies):
        self.ids = [f"{n:04d}" for n in range(total)]
        self.latencies = list(latencies)
        self.sizes = []

    async def fetch_json(self, url):
        query = dict(parse_qsl(urlsplit(url).query))
        size = int(query["sz"])
        page = int(query.get("p", "1"))
        self.sizes.append(size)
        start = (page - 1) * size
        persons = [{"intressent_id": i} for i in self.ids[start:start + size]]
        latency = self.latencies.pop(0) if self.latencies else 2.0
        return fetched({"personlista": {"person": persons}}, latency=latency)


class TestPagination:
    async def test_adaptive_sizes_leave_no_gaps(self, engine, sync_config):
        api = PagedMembersApi(1000, latencies=[2.0, 0.5, 6.0, 2.0, 0.5])
        service = BatchSyncService(api, engine, sync_config)
        for _ in range(6):
            await service.run_cycle("members")

        # 150 at offset 200 and 100 at offset 350 are shrunk to divisors
        assert api.sizes[:5] == [100, 100, 100, 50, 70]
        cursor = service.state.get(ResourceType.MEMBERS)
        assert cursor.offset == sum(api.sizes)
        with Session(engine) as s:
            stored = sorted(s.exec(select(Member.member_id)).all())
        assert stored == api.ids[:cursor.offset]

    async def test_pinned_size_aligned_to_offset(self, engine, sync_config):
        api = PagedMembersApi(1000, latencies=[])
        service = BatchSyncService(api, engine, sync_config)
        await service.run_cycle("members", batch_size=50)
        await service.run_cycle("members", batch_size=50)
        await service.run_cycle("members", batch_size=50)

        preview = service.preview("members", batch_size=100)
        assert preview.batch_size == 75
        assert preview.current_offset == 150
        result = await service.run_cycle("members", batch_size=100)
        assert result.batch_size == 75
        with Session(engine) as s:
            stored = sorted(s.exec(select(Member.member_id)).all())
        assert stored == api.ids[:225]


# ─── Cancellation ─────────────────────────────────────────────────────────────

class TestCancellation:
    async def test_cancel_event_mid_flight(self, engine, sync_config):
        started = asyncio.Event()

        async def slow_fetch(url):
            started.set()
            await asyncio.sleep(10)
            return fetched(PERSONLISTA)

        service = BatchSyncService(make_mock_client(side_effect=slow_fetch), engine, sync_config)
        cancel = asyncio.Event()

        async def cancel_when_started():
            await started.wait()
            cancel.set()

        canceller = asyncio.ensure_future(cancel_when_started())
        with pytest.raises(SyncCancelledError):
            await service.run_cycle("members", batch_size=2, cancel_event=cancel)
        await canceller

        cursor = service.state.get(ResourceType.MEMBERS)
        assert cursor.offset == 0
        assert cursor.retry_count == 0
        assert cursor.last_error is None
        assert _count(engine, Member) == 0
        attempt = _attempts(engine)[-1]
        assert attempt.status == "failed"
        assert attempt.error_message == CANCELLED_MESSAGE

    async def test_cancel_event_already_set(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(SyncCancelledError):
            await service.run_cycle("members", cancel_event=cancel)

        client.fetch_json.assert_not_called()
        assert _attempts(engine)[-1].error_message == CANCELLED_MESSAGE

    async def test_task_cancellation(self, engine, sync_config):
        started = asyncio.Event()

        async def slow_fetch(url):
            started.set()
            await asyncio.sleep(10)

        service = BatchSyncService(make_mock_client(side_effect=slow_fetch), engine, sync_config)
        task = asyncio.ensure_future(service.run_cycle("members"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert service.state.get(ResourceType.MEMBERS).offset == 0
        assert _attempts(engine)[-1].error_message == CANCELLED_MESSAGE


# ─── Strategic plan ───────────────────────────────────────────────────────────

class TestStrategicPlan:
    async def test_runs_in_priority_order(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        summary = await service.run_strategic_plan()

        assert [p.resource_type for p in summary.phases] == [
            "members", "documents", "speeches", "votes",
        ]
        assert summary.success
        assert summary.total_processed == 2 + 2 + 3 + 2

    async def test_failing_phase_does_not_stop_plan(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint(
            {"dokumentlista": RetryExhaustedError("HTTP 502 after 4 attempts", attempts=4)}
        ))
        service = BatchSyncService(client, engine, sync_config)
        summary = await service.run_strategic_plan()

        by_type = {p.resource_type: p for p in summary.phases}
        assert by_type["documents"].success is False
        assert "502" in by_type["documents"].error
        assert by_type["speeches"].success is True
        assert by_type["votes"].records_processed == 2
        assert summary.success is False
        assert summary.total_processed == 2 + 3 + 2
        assert service.state.get(ResourceType.DOCUMENTS).retry_count == 1

    async def test_complete_types_skipped(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        service.state.mark_complete(ResourceType.MEMBERS)
        service.state.mark_complete(ResourceType.VOTES)

        summary = await service.run_strategic_plan()

        skipped = [p.resource_type for p in summary.phases if p.skipped]
        assert skipped == ["members", "votes"]
        assert client.fetch_json.await_count == 2

    async def test_delay_between_phases(self, engine):
        config = default_sync_config("https://api.test", inter_phase_delay_seconds=2.0)
        sleep = AsyncMock()
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint()), engine, config, sleep=sleep
        )
        await service.run_strategic_plan()

        assert sleep.await_count == 3
        sleep.assert_awaited_with(2.0)

    async def test_filters_forwarded(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        await service.run_strategic_plan(filters={"rm": "2023/24"})

        for call in client.fetch_json.await_args_list:
            assert "rm=2023%2F24" in call.args[0]

    async def test_cancel_stops_plan(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(SyncCancelledError):
            await service.run_strategic_plan(cancel_event=cancel)
        assert len(_attempts(engine)) == 1


def _completed_ago(service, rt, **delta):
    """Mark a resource complete as if its last pass finished `delta` ago."""
    service.state.mark_complete(rt)
    with Session(service.engine) as s:
        cursor = s.exec(select(SyncCursor).where(SyncCursor.resource_type == rt.value)).one()
        cursor.last_sync_at = datetime.utcnow() - timedelta(**delta)
        s.add(cursor)
        s.commit()


class TestPlanGating:
    @pytest.mark.parametrize("manual", [True, False])
    async def test_disabled_type_never_runs(self, engine, manual):
        config = default_sync_config("https://api.test", 0, disabled=["votes"])
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, config)

        summary = await service.run_strategic_plan(manual=manual)

        votes = summary.phases[-1]
        assert votes.resource_type == "votes"
        assert votes.skipped is True
        assert votes.skip_reason == SKIP_DISABLED
        assert client.fetch_json.await_count == 3
        assert _count(engine, VoteRecord) == 0

    async def test_scheduled_skips_fresh_complete_type(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        _completed_ago(service, ResourceType.DOCUMENTS, hours=3)

        summary = await service.run_strategic_plan(manual=False)

        by_type = {p.resource_type: p for p in summary.phases}
        assert by_type["documents"].skip_reason == SKIP_NOT_DUE
        assert by_type["documents"].is_complete is True
        assert _count(engine, Document) == 0

    async def test_scheduled_refreshes_stale_complete_type(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        _completed_ago(service, ResourceType.DOCUMENTS, hours=25)

        summary = await service.run_strategic_plan(manual=False)

        by_type = {p.resource_type: p for p in summary.phases}
        assert by_type["documents"].skipped is False
        assert by_type["documents"].records_processed == 2
        cursor = service.state.get(ResourceType.DOCUMENTS)
        assert cursor.offset == 2
        assert cursor.total_fetched == 2
        assert any("/dokumentlista/" in c.args[0] for c in client.fetch_json.await_args_list)

    async def test_interval_is_per_type(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        # members refresh weekly, speeches daily
        _completed_ago(service, ResourceType.MEMBERS, hours=100)
        _completed_ago(service, ResourceType.SPEECHES, hours=100)

        summary = await service.run_strategic_plan(manual=False)

        by_type = {p.resource_type: p for p in summary.phases}
        assert by_type["members"].skip_reason == SKIP_NOT_DUE
        assert by_type["speeches"].skipped is False
        assert by_type["speeches"].records_processed == 3

    async def test_daily_job_within_grace_is_due(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(side_effect=route_by_endpoint()), engine, sync_config)
        _completed_ago(service, ResourceType.VOTES, hours=23, minutes=45)

        summary = await service.run_strategic_plan(manual=False)

        assert summary.phases[-1].skipped is False
        assert summary.phases[-1].records_processed == 2

    async def test_manual_ignores_interval(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        _completed_ago(service, ResourceType.DOCUMENTS, hours=500)
        await service.run_cycle("members", batch_size=2)  # in progress, synced just now

        summary = await service.run_strategic_plan(manual=True)

        by_type = {p.resource_type: p for p in summary.phases}
        assert by_type["documents"].skip_reason == SKIP_COMPLETE
        assert by_type["members"].skipped is False
        assert service.state.get(ResourceType.DOCUMENTS).is_complete is True

    async def test_scheduled_continues_backfill(self, engine, sync_config):
        client = make_mock_client(side_effect=route_by_endpoint())
        service = BatchSyncService(client, engine, sync_config)
        await service.run_cycle("members", batch_size=2)

        summary = await service.run_strategic_plan(manual=False)

        assert summary.phases[0].resource_type == "members"
        assert summary.phases[0].skipped is False


# ─── Trigger dispatch ─────────────────────────────────────────────────────────

class TestHandle:
    async def test_preview_does_not_fetch(self, engine, sync_config):
        client = make_mock_client(PERSONLISTA)
        service = BatchSyncService(client, engine, sync_config)
        response = await service.handle(SyncRequest(
            resource_type="speeches", preview=True, filters={"anf_datum_from": "2024-01-01"},
        ))

        assert response.success
        assert response.batch_size == 40
        assert response.offset == 0
        assert "anf_datum_from=2024-01-01" in response.url
        client.fetch_json.assert_not_awaited()

    async def test_single_resource(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        response = await service.handle(SyncRequest(resource_type="members", batch_size=2))

        assert response.success
        assert response.records_processed == 2
        assert response.is_complete is False
        assert response.total_fetched == 2

    async def test_all_runs_plan(self, engine, sync_config):
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint()), engine, sync_config
        )
        response = await service.handle(SyncRequest(resource_type="all"))

        assert response.success
        assert len(response.phases) == 4
        assert response.records_processed == 9

    async def test_scheduled_flag_reaches_plan(self, engine, sync_config):
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint()), engine, sync_config
        )
        _completed_ago(service, ResourceType.MEMBERS, hours=1)

        manual = await service.handle(SyncRequest(strategic_plan=True))
        assert manual.phases[0]["skip_reason"] == SKIP_COMPLETE
        scheduled = await service.handle(SyncRequest(strategic_plan=True, manual=False))
        assert scheduled.phases[0]["skip_reason"] == SKIP_NOT_DUE

    async def test_plan_errors_reported(self, engine, sync_config):
        service = BatchSyncService(
            make_mock_client(side_effect=route_by_endpoint(
                {"voteringlista": ClientResponseError(404, "https://api.test/voteringlista/")}
            )),
            engine,
            sync_config,
        )
        response = await service.handle(SyncRequest(strategic_plan=True))

        assert response.success is False
        assert response.error.startswith("votes: HTTP 404")

    async def test_failure_becomes_response(self, engine, sync_config):
        client = make_mock_client(side_effect=RetryExhaustedError("gave up", attempts=6))
        service = BatchSyncService(client, engine, sync_config)
        response = await service.handle(SyncRequest(resource_type="members"))

        assert response.success is False
        assert response.error == "gave up"

    async def test_unknown_type_becomes_response(self, engine, sync_config):
        service = BatchSyncService(make_mock_client(PERSONLISTA), engine, sync_config)
        response = await service.handle(SyncRequest(resource_type="committees"))

        assert response.success is False
        assert "Unknown resource type" in response.error
