"""
Order Sync Scheduler - Polls the sync endpoint for the selected tenant

One tenant at a time, one sync in flight at a time. HTTP 429 responses are
retried once after the server's Retry-After delay, or after an exponential
backoff with jitter when the server gives none.
"""
import asyncio
import enum
import random
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Callable, Awaitable, List
from uuid import uuid4

import httpx
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from possync.core.config import settings
from possync.core.database import SessionLocal
from possync.integrations.errors import IntegrationNotFound, RateLimited
from possync.schemas.sync import SyncStats
from possync.services.sync_service import OrderSyncService

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None

Callback = Callable[[], Awaitable[None]]


class SyncState(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate-limited"


class LoopState(str, enum.Enum):
    STOPPED = "stopped"
    WAITING = "waiting"
    RUNNING = "running"


# ========== Backoff ==========

def backoff_delay(
    attempt: int,
    rng: Callable[[], float] = random.random,
    base: float = 1.0,
    cap: float = 32.0,
    jitter: float = 0.1,
) -> float:
    """min(base * 2**attempt, cap) plus up to `jitter` of that delay"""
    delay = min(base * (2 ** attempt), cap)
    return delay + rng() * delay * jitter


def parse_retry_after(value: Optional[str], now: datetime) -> Optional[float]:
    """Retry-After as seconds: either delta-seconds or an HTTP date. None when absent or unparsable."""
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if value.isdigit():
        return float(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparsable Retry-After header: {value!r}")
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - now).total_seconds(), 0.0)


# ========== Timers ==========

class Timer(ABC):
    """Schedules async callbacks; handles are opaque"""

    @abstractmethod
    def call_every(self, seconds: float, callback: Callback) -> Any:
        pass

    @abstractmethod
    def call_later(self, seconds: float, callback: Callback) -> Any:
        pass

    @abstractmethod
    def cancel(self, handle: Any):
        pass


class APSchedulerTimer(Timer):
    """
    Timer backed by an AsyncIOScheduler
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def call_every(self, seconds: float, callback: Callback) -> str:
        job = self.scheduler.add_job(
            func=callback,
            trigger=IntervalTrigger(seconds=seconds),
            id=f"order_sync_interval_{uuid4().hex}",
            name="Order sync poll",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping syncs
            coalesce=True,
        )
        return job.id

    def call_later(self, seconds: float, callback: Callback) -> str:
        job = self.scheduler.add_job(
            func=callback,
            trigger="date",
            run_date=datetime.now() + timedelta(seconds=seconds),
            id=f"order_sync_once_{uuid4().hex}",
            name="Order sync one-shot",
        )
        return job.id

    def cancel(self, handle: str):
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            # One-shot jobs are removed by the scheduler once they have run
            pass


# ========== Transports ==========

@dataclass
class SyncResponse:
    status_code: int
    payload: Dict[str, Any] = field(default_factory=dict)
    retry_after: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error(self) -> str:
        return self.payload.get("error") or self.payload.get("detail") or f"Sync failed with HTTP {self.status_code}"


class SyncTransport(ABC):
    """Triggers one sync run for a tenant"""

    @abstractmethod
    async def trigger(self, tenant_id: str) -> SyncResponse:
        pass


class HttpSyncTransport(SyncTransport):
    """
    POSTs to the sync endpoint of a running API
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def trigger(self, tenant_id: str) -> SyncResponse:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(f"{self.api_url}/api/sync", json={"tenantId": tenant_id})

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        return SyncResponse(
            status_code=response.status_code,
            payload=payload,
            retry_after=response.headers.get("Retry-After"),
        )


class LocalSyncTransport(SyncTransport):
    """
    Runs the sync in-process with its own database session
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        service_factory: Callable[..., OrderSyncService] = OrderSyncService,
    ):
        self.session_factory = session_factory
        self.service_factory = service_factory

    async def trigger(self, tenant_id: str) -> SyncResponse:
        db = self.session_factory()
        try:
            stats = await self.service_factory(db).run_sync(tenant_id)
            return SyncResponse(200, {
                "success": True,
                "stats": SyncStats.from_run(stats).model_dump(by_alias=True, mode="json"),
            })
        except IntegrationNotFound as e:
            return SyncResponse(404, {"success": False, "error": str(e)})
        except RateLimited as e:
            return SyncResponse(429, {"success": False, "error": str(e)}, retry_after=e.retry_after)
        except Exception as e:
            logger.error(f"In-process sync failed for tenant {tenant_id}: {e}")
            return SyncResponse(500, {"success": False, "error": str(e) or e.__class__.__name__})
        finally:
            db.close()


# ========== Scheduler ==========

@dataclass(frozen=True)
class SchedulerSnapshot:
    tenant_id: Optional[str]
    state: SyncState
    loop_state: LoopState
    visible: bool
    last_sync_at: Optional[datetime]
    last_error: Optional[str]
    consecutive_rate_limits: int
    retry_delay: Optional[float]
    last_stats: Optional[Dict[str, Any]]


class SyncScheduler:
    """
    Polling loop for one selected tenant.

    Signals: select_tenant, deselect_tenant, set_visible, sync_now and the
    interval and retry ticks delivered by the timer.
    """

    def __init__(
        self,
        transport: SyncTransport,
        timer: Timer,
        interval_seconds: float = 60,
        rng: Callable[[], float] = random.random,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        backoff_base: float = 1.0,
        backoff_cap: float = 32.0,
        backoff_jitter: float = 0.1,
    ):
        self.transport = transport
        self.timer = timer
        self.interval_seconds = interval_seconds
        self.rng = rng
        self.now = now
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.backoff_jitter = backoff_jitter

        self.tenant_id: Optional[str] = None
        self.visible = True
        self.state = SyncState.IDLE
        self.last_sync_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_stats: Optional[Dict[str, Any]] = None
        self.consecutive_rate_limits = 0
        self.retry_delay: Optional[float] = None

        self._in_flight = False
        self._interval_handle = None
        self._retry_handle = None
        self._listeners: List[Callable[[SchedulerSnapshot], None]] = []

    # ========== Observers ==========

    def add_listener(self, listener: Callable[[SchedulerSnapshot], None]) -> Callable[[], None]:
        """Register an observer, called at once with the current snapshot; returns a function that removes it"""
        self._listeners.append(listener)
        listener(self.snapshot())

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    @property
    def loop_state(self) -> LoopState:
        if self._in_flight and self._retry_handle is None:
            return LoopState.RUNNING
        if self._interval_handle is not None or self._retry_handle is not None:
            return LoopState.WAITING
        return LoopState.STOPPED

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    def snapshot(self) -> SchedulerSnapshot:
        return SchedulerSnapshot(
            tenant_id=self.tenant_id,
            state=self.state,
            loop_state=self.loop_state,
            visible=self.visible,
            last_sync_at=self.last_sync_at,
            last_error=self.last_error,
            consecutive_rate_limits=self.consecutive_rate_limits,
            retry_delay=self.retry_delay,
            last_stats=self.last_stats,
        )

    def _notify(self):
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Sync status listener failed: {e}")

    # ========== Signals ==========

    def select_tenant(self, tenant_id: str):
        """Start polling for a tenant: one sync right away, then one every interval"""
        if tenant_id == self.tenant_id:
            return
        if self.tenant_id is not None:
            self._stop_polling()

        self.tenant_id = tenant_id
        self.state = SyncState.IDLE
        self.last_error = None
        self.last_stats = None
        self.consecutive_rate_limits = 0
        logger.info(f"Order sync polling selected tenant {tenant_id}")

        if self.visible:
            self._start_polling()
        self._notify()

    def deselect_tenant(self):
        """Stop polling; a run already in flight still records its result"""
        if self.tenant_id is None:
            return
        logger.info(f"Order sync polling stopped for tenant {self.tenant_id}")
        self._stop_polling()
        self.tenant_id = None
        self._notify()

    def set_visible(self, visible: bool):
        """Hidden: stop the interval and any pending retry. Visible again: sync at once and resume."""
        if visible == self.visible:
            return
        self.visible = visible

        if self.tenant_id is not None:
            if visible:
                self._start_polling()
            else:
                self._stop_polling()
        self._notify()

    async def sync_now(self) -> bool:
        """
        Run one sync unless one is already in flight (or waiting on a retry).
        Returns False when the call was a no-op.
        """
        if self.tenant_id is None or self._in_flight:
            return False
        self._in_flight = True
        await self._run()
        return True

    # ========== Internals ==========

    def _start_polling(self):
        if self._interval_handle is None:
            self._interval_handle = self.timer.call_every(self.interval_seconds, self._on_interval)
        self.timer.call_later(0, self._on_interval)

    def _stop_polling(self):
        if self._interval_handle is not None:
            self.timer.cancel(self._interval_handle)
            self._interval_handle = None
        if self._retry_handle is not None:
            self.timer.cancel(self._retry_handle)
            self._retry_handle = None
            self.retry_delay = None
            self._in_flight = False

    async def _on_interval(self):
        if not self.visible:
            return
        await self.sync_now()

    async def _on_retry(self):
        self._retry_handle = None
        self.retry_delay = None
        if self.tenant_id is None or not self.visible:
            self._in_flight = False
            return
        await self._run()

    async def _run(self):
        """Caller holds the in-flight slot"""
        tenant_id = self.tenant_id
        self.state = SyncState.SYNCING
        self._notify()

        try:
            response = await self.transport.trigger(tenant_id)
        except Exception as e:
            logger.error(f"Order sync request failed for tenant {tenant_id}: {e}")
            if self._release_stale(tenant_id):
                return
            self._in_flight = False
            self.state = SyncState.ERROR
            self.last_error = str(e) or e.__class__.__name__
            self._notify()
            return

        if self._release_stale(tenant_id, response.status_code):
            return

        if response.status_code == 429:
            self._on_rate_limited(response)
        elif response.ok:
            self._in_flight = False
            self.state = SyncState.SUCCESS
            self.last_sync_at = self.now()
            self.last_error = None
            self.last_stats = response.payload.get("stats")
            self.consecutive_rate_limits = 0
            logger.info(f"Order sync succeeded for tenant {tenant_id}")
        else:
            self._in_flight = False
            self.state = SyncState.ERROR
            self.last_error = response.error
            logger.warning(f"Order sync failed for tenant {tenant_id}: {self.last_error}")

        self._notify()

    def _release_stale(self, tenant_id: str, status_code: Optional[int] = None) -> bool:
        """
        A run started for a tenant that has since been replaced frees the slot
        without touching the new tenant's state, then gives the new tenant its
        first sync. Returns False when the run is still current.
        """
        if self.tenant_id is None or self.tenant_id == tenant_id:
            return False

        self._in_flight = False
        logger.info(
            f"Discarded order sync result for tenant {tenant_id} (status {status_code}); "
            f"tenant {self.tenant_id} is now selected"
        )
        if self.visible:
            self.timer.call_later(0, self._on_interval)
        self._notify()
        return True

    def _on_rate_limited(self, response: SyncResponse):
        self.state = SyncState.RATE_LIMITED
        self.last_error = response.error

        delay = parse_retry_after(response.retry_after, self.now())
        if delay is None:
            delay = backoff_delay(
                self.consecutive_rate_limits,
                self.rng,
                base=self.backoff_base,
                cap=self.backoff_cap,
                jitter=self.backoff_jitter,
            )
        self.consecutive_rate_limits += 1

        if self.tenant_id is None or not self.visible:
            self._in_flight = False
            return

        # The in-flight slot stays taken until the retry has run
        self.retry_delay = delay
        self._retry_handle = self.timer.call_later(delay, self._on_retry)
        logger.warning(
            f"Order sync rate limited for tenant {self.tenant_id}; "
            f"retry {self.consecutive_rate_limits} in {delay:.2f}s"
        )


# ========== Global Functions ==========

def get_scheduler(transport: Optional[SyncTransport] = None) -> SyncScheduler:
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        if transport is None:
            transport = HttpSyncTransport(settings.SYNC_API_URL)
        _scheduler = SyncScheduler(
            transport=transport,
            timer=APSchedulerTimer(),
            interval_seconds=settings.SYNC_POLL_INTERVAL_SECONDS,
            backoff_base=settings.SYNC_BACKOFF_BASE_SECONDS,
            backoff_cap=settings.SYNC_BACKOFF_CAP_SECONDS,
            backoff_jitter=settings.SYNC_BACKOFF_JITTER,
        )
    return _scheduler


def start_scheduler(tenant_id: str, transport: Optional[SyncTransport] = None) -> SyncScheduler:
    """Start the global scheduler and select a tenant; needs a running event loop"""
    scheduler = get_scheduler(transport)
    scheduler.timer.start()
    scheduler.select_tenant(tenant_id)
    logger.info("Order sync scheduler started")
    return scheduler


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.deselect_tenant()
        _scheduler.timer.shutdown()
        _scheduler = None
        logger.info("Order sync scheduler stopped")


# ========== CLI Commands ==========

async def _run_once(tenant_id: str, transport: SyncTransport) -> int:
    response = await transport.trigger(tenant_id)
    if response.ok:
        logger.info(f"Sync succeeded: {response.payload.get('stats')}")
        return 0
    logger.error(f"Sync failed (HTTP {response.status_code}): {response.error}")
    return 1


async def _run_forever(tenant_id: str, transport: SyncTransport):
    start_scheduler(tenant_id, transport)
    try:
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


if __name__ == "__main__":
    """
    Run scheduler standalone:
    python -m possync.jobs.order_sync <tenant_id> [--once] [--api URL]
    """
    import argparse
    import sys

    from possync.core.logging import setup_logging

    parser = argparse.ArgumentParser(description="Poll Toast order sync for one tenant")
    parser.add_argument("tenant_id", help="Tenant to sync")
    parser.add_argument("--once", action="store_true", help="Run a single sync and exit")
    parser.add_argument("--api", help="Sync through a running API at this URL instead of in-process")
    args = parser.parse_args()

    setup_logging()

    if args.api:
        transport = HttpSyncTransport(args.api)
    else:
        transport = LocalSyncTransport()

    if args.once:
        sys.exit(asyncio.run(_run_once(args.tenant_id, transport)))

    print("Starting order sync scheduler...")
    print("Press Ctrl+C to stop")
    try:
        asyncio.run(_run_forever(args.tenant_id, transport))
    except KeyboardInterrupt:
        print("Scheduler stopped")
