import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from possync.integrations.errors import IntegrationNotFound, RateLimited
from possync.jobs.order_sync import (
    HttpSyncTransport,
    LocalSyncTransport,
    LoopState,
    SyncResponse,
    SyncScheduler,
    SyncState,
    SyncTransport,
    Timer,
    backoff_delay,
    parse_retry_after,
)
from possync.services.sync_service import SyncRunStats

NOW = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
OK = SyncResponse(200, {"success": True, "stats": {"ordersUpserted": 3}})
LIMITED = SyncResponse(429, {"success": False, "error": "Rate limited by Toast API"})


class FakeTimer(Timer):
    def __init__(self):
        self.jobs = {}
        self._next = 0

    def _add(self, kind, seconds, callback):
        self._next += 1
        self.jobs[self._next] = (kind, seconds, callback)
        return self._next

    def call_every(self, seconds, callback):
        return self._add("every", seconds, callback)

    def call_later(self, seconds, callback):
        return self._add("later", seconds, callback)

    def cancel(self, handle):
        self.jobs.pop(handle, None)

    def pending(self, kind="later"):
        return [seconds for k, seconds, _ in self.jobs.values() if k == kind]

    async def fire_later(self):
        """Run every one-shot job due now; jobs they schedule wait for the next call"""
        due = [(h, cb) for h, (k, _, cb) in self.jobs.items() if k == "later"]
        for handle, _ in due:
            del self.jobs[handle]
        for _, callback in due:
            await callback()

    async def tick(self):
        for kind, _, callback in list(self.jobs.values()):
            if kind == "every":
                await callback()


class FakeTransport(SyncTransport):
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.gate = None

    async def trigger(self, tenant_id):
        self.calls.append(tenant_id)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_scheduler(transport, timer=None, rng=lambda: 0.5):
    return SyncScheduler(transport, timer or FakeTimer(), interval_seconds=60, rng=rng, now=lambda: NOW)


# ========== Backoff helpers ==========

def test_backoff_delay_doubles_and_caps():
    assert [backoff_delay(n, rng=lambda: 0.0) for n in range(7)] == [1, 2, 4, 8, 16, 32, 32]
    assert backoff_delay(0, rng=lambda: 1.0) == pytest.approx(1.1)
    assert backoff_delay(2, rng=lambda: 0.5) == pytest.approx(4.2)


def test_parse_retry_after():
    assert parse_retry_after("7", NOW) == 7.0
    assert parse_retry_after(format_datetime(NOW + timedelta(seconds=30), usegmt=True), NOW) == 30.0
    assert parse_retry_after(format_datetime(NOW - timedelta(seconds=30), usegmt=True), NOW) == 0.0
    assert parse_retry_after(None, NOW) is None
    assert parse_retry_after("soon", NOW) is None


# ========== Polling ==========

@pytest.mark.asyncio
async def test_select_runs_immediately_then_polls():
    timer = FakeTimer()
    transport = FakeTransport(OK, OK)
    scheduler = make_scheduler(transport, timer)

    scheduler.select_tenant("tenant-1")
    assert timer.pending("every") == [60]
    assert timer.pending("later") == [0]

    await timer.fire_later()
    assert transport.calls == ["tenant-1"]
    assert scheduler.state == SyncState.SUCCESS
    assert scheduler.last_sync_at == NOW
    assert scheduler.last_stats == {"ordersUpserted": 3}
    assert scheduler.loop_state == LoopState.WAITING

    await timer.tick()
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_backoff_schedule_and_reset_after_success():
    timer = FakeTimer()
    transport = FakeTransport(LIMITED, LIMITED, LIMITED, OK, LIMITED)
    scheduler = make_scheduler(transport, timer, rng=lambda: 0.5)
    scheduler.select_tenant("tenant-1")

    delays = []
    await timer.fire_later()
    for _ in range(3):
        assert scheduler.state == SyncState.RATE_LIMITED
        delays.append(timer.pending("later")[0])
        await timer.fire_later()

    assert delays == pytest.approx([1.05, 2.1, 4.2])
    assert scheduler.state == SyncState.SUCCESS
    assert scheduler.consecutive_rate_limits == 0
    assert timer.pending("later") == []

    await timer.tick()
    assert timer.pending("later") == pytest.approx([1.05])


@pytest.mark.asyncio
async def test_backoff_jitter_bounds():
    for rng, expected in ((lambda: 0.0, 1.0), (lambda: 0.999, 1.0999)):
        timer = FakeTimer()
        scheduler = make_scheduler(FakeTransport(LIMITED), timer, rng=rng)
        scheduler.select_tenant("tenant-1")
        await timer.fire_later()
        assert timer.pending("later") == pytest.approx([expected])


@pytest.mark.asyncio
async def test_retry_after_is_honoured_exactly():
    timer = FakeTimer()
    limited = SyncResponse(429, {"error": "slow down"}, retry_after="7")
    scheduler = make_scheduler(FakeTransport(limited), timer)
    scheduler.select_tenant("tenant-1")

    await timer.fire_later()
    assert timer.pending("later") == [7.0]
    assert scheduler.retry_delay == 7.0
    assert scheduler.last_error == "slow down"


@pytest.mark.asyncio
async def test_slot_stays_busy_while_retry_pending():
    timer = FakeTimer()
    transport = FakeTransport(LIMITED, OK)
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-1")
    await timer.fire_later()

    assert scheduler.is_syncing
    assert await scheduler.sync_now() is False
    await timer.tick()
    assert len(transport.calls) == 1

    await timer.fire_later()
    assert len(transport.calls) == 2
    assert not scheduler.is_syncing


@pytest.mark.asyncio
async def test_sync_now_is_not_reentrant():
    transport = FakeTransport(OK)
    transport.gate = asyncio.Event()
    scheduler = make_scheduler(transport)
    scheduler.tenant_id = "tenant-1"

    first = asyncio.ensure_future(scheduler.sync_now())
    await asyncio.sleep(0)
    assert scheduler.loop_state == LoopState.RUNNING
    assert await scheduler.sync_now() is False

    transport.gate.set()
    assert await first is True
    assert transport.calls == ["tenant-1"]


@pytest.mark.asyncio
async def test_deselect_stops_polling_and_cancels_retry():
    timer = FakeTimer()
    transport = FakeTransport(LIMITED)
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-1")
    await timer.fire_later()
    assert timer.pending("later")

    scheduler.deselect_tenant()
    assert timer.jobs == {}
    assert scheduler.loop_state == LoopState.STOPPED
    assert not scheduler.is_syncing
    assert await scheduler.sync_now() is False


@pytest.mark.asyncio
async def test_in_flight_run_records_result_after_deselect():
    timer = FakeTimer()
    transport = FakeTransport(OK)
    transport.gate = asyncio.Event()
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-1")

    running = asyncio.ensure_future(timer.fire_later())
    await asyncio.sleep(0)
    scheduler.deselect_tenant()
    transport.gate.set()
    await running

    assert scheduler.state == SyncState.SUCCESS
    assert scheduler.last_sync_at == NOW
    assert timer.jobs == {}


@pytest.mark.asyncio
async def test_late_result_for_previous_tenant_leaves_new_tenant_clean():
    timer = FakeTimer()
    transport = FakeTransport(LIMITED, OK)
    transport.gate = asyncio.Event()
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-a")

    running = asyncio.ensure_future(timer.fire_later())
    await asyncio.sleep(0)
    scheduler.select_tenant("tenant-b")
    await timer.fire_later()
    assert transport.calls == ["tenant-a"]

    transport.gate.set()
    await running

    assert scheduler.state == SyncState.IDLE
    assert scheduler.consecutive_rate_limits == 0
    assert scheduler.last_error is None
    assert scheduler.retry_delay is None
    assert not scheduler.is_syncing
    assert timer.pending("later") == [0]

    await timer.fire_later()
    assert transport.calls == ["tenant-a", "tenant-b"]
    assert scheduler.state == SyncState.SUCCESS
    assert scheduler.consecutive_rate_limits == 0


@pytest.mark.asyncio
async def test_late_failure_for_previous_tenant_is_not_recorded():
    timer = FakeTimer()
    transport = FakeTransport(RuntimeError("connection reset"))
    transport.gate = asyncio.Event()
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-a")

    running = asyncio.ensure_future(timer.fire_later())
    await asyncio.sleep(0)
    scheduler.select_tenant("tenant-b")
    transport.gate.set()
    await running

    assert scheduler.state == SyncState.IDLE
    assert scheduler.last_error is None
    assert not scheduler.is_syncing


@pytest.mark.asyncio
async def test_hidden_pauses_and_visible_resumes():
    timer = FakeTimer()
    transport = FakeTransport(LIMITED, OK)
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-1")
    await timer.fire_later()

    scheduler.set_visible(False)
    assert timer.jobs == {}
    assert not scheduler.is_syncing

    scheduler.set_visible(True)
    assert timer.pending("every") == [60]
    await timer.fire_later()
    assert len(transport.calls) == 2
    assert scheduler.state == SyncState.SUCCESS


@pytest.mark.asyncio
async def test_select_while_hidden_waits_for_visibility():
    timer = FakeTimer()
    scheduler = make_scheduler(FakeTransport(OK), timer)
    scheduler.set_visible(False)

    scheduler.select_tenant("tenant-1")
    assert timer.jobs == {}
    assert scheduler.loop_state == LoopState.STOPPED


@pytest.mark.asyncio
async def test_other_failures_record_error_without_retry():
    timer = FakeTimer()
    failed = SyncResponse(500, {"success": False, "error": "Toast orders fetch failed: 500"})
    transport = FakeTransport(LIMITED, failed, RuntimeError("connection reset"))
    scheduler = make_scheduler(transport, timer)
    scheduler.select_tenant("tenant-1")

    await timer.fire_later()
    await timer.fire_later()
    assert scheduler.state == SyncState.ERROR
    assert scheduler.last_error == "Toast orders fetch failed: 500"
    assert scheduler.consecutive_rate_limits == 1
    assert timer.pending("later") == []
    assert not scheduler.is_syncing

    await timer.tick()
    assert scheduler.state == SyncState.ERROR
    assert scheduler.last_error == "connection reset"


@pytest.mark.asyncio
async def test_listeners_receive_snapshots():
    timer = FakeTimer()
    scheduler = make_scheduler(FakeTransport(OK), timer)
    seen = []
    remove = scheduler.add_listener(lambda snapshot: seen.append(snapshot.state))

    scheduler.select_tenant("tenant-1")
    await timer.fire_later()
    assert seen == [SyncState.IDLE, SyncState.IDLE, SyncState.SYNCING, SyncState.SUCCESS]

    remove()
    scheduler.deselect_tenant()
    assert len(seen) == 4


# ========== Transports ==========

class StubService:
    def __init__(self, db, outcome):
        self.outcome = outcome

    async def run_sync(self, tenant_id):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class StubSession:
    closed = False

    def close(self):
        self.closed = True


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome, status, retry_after", [
    (SyncRunStats(orders_processed=2, orders_upserted=2), 200, None),
    (IntegrationNotFound("tenant-1"), 404, None),
    (RateLimited(retry_after="9"), 429, "9"),
    (RuntimeError("db down"), 500, None),
])
async def test_local_transport_maps_outcomes(outcome, status, retry_after):
    session = StubSession()
    transport = LocalSyncTransport(
        session_factory=lambda: session,
        service_factory=lambda db: StubService(db, outcome),
    )

    response = await transport.trigger("tenant-1")

    assert response.status_code == status
    assert response.retry_after == retry_after
    assert session.closed
    if status == 200:
        assert response.payload["stats"]["ordersUpserted"] == 2


@pytest.mark.asyncio
async def test_http_transport_posts_to_sync_endpoint():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(429, json={"success": False, "error": "limited"}, headers={"Retry-After": "3"})

    transport = HttpSyncTransport("http://api.test/", transport=httpx.MockTransport(handler))
    response = await transport.trigger("tenant-1")

    assert str(requests[0].url) == "http://api.test/api/sync"
    assert requests[0].content.replace(b" ", b"") == b'{"tenantId":"tenant-1"}'
    assert response.status_code == 429
    assert response.retry_after == "3"
    assert response.error == "limited"
