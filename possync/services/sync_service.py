"""
Sync Service - Toast order synchronization for one tenant
"""
from typing import Optional, List, Dict, Any, Callable, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
import enum
import logging

from possync.core.config import settings
from possync.models import Lead, PosIntegration, PosOrder, PosOrderItem, PosPayment
from possync.integrations.base import BasePOSClient, NormalizationResult
from possync.integrations.errors import IntegrationNotFound, PerOrderPersistError, RateLimited
from possync.services import integration_service, store
from possync.services.lead_matcher import LeadIndex, match_lead
from possync.services.normalizer import normalize_order

logger = logging.getLogger(__name__)

ORDER_KEYS = ("tenant_id", "pos_order_guid")
ITEM_KEYS = ("order_id", "pos_selection_guid")
PAYMENT_KEYS = ("order_id", "pos_payment_guid")


class SyncPhase(str, enum.Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    MATCHING = "matching"
    PERSISTING = "persisting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SyncRunStats:
    """Counters for one run; returned to the caller, never stored"""
    orders_processed: int = 0
    orders_upserted: int = 0
    orders_skipped: int = 0
    leads_matched: int = 0
    line_items_inserted: int = 0
    payments_inserted: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orders_processed": self.orders_processed,
            "orders_upserted": self.orders_upserted,
            "orders_skipped": self.orders_skipped,
            "leads_matched": self.leads_matched,
            "line_items_inserted": self.line_items_inserted,
            "payments_inserted": self.payments_inserted,
            "date_range": {
                "start": self.start_date.isoformat() if self.start_date else None,
                "end": self.end_date.isoformat() if self.end_date else None,
            },
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dedupe_orders(raw_orders: List[Any]) -> List[Any]:
    """
    One entry per order guid: first position, latest payload.
    Entries without a guid are kept so they get counted as skipped.
    """
    positions: Dict[str, int] = {}
    unique: List[Any] = []
    for raw_order in raw_orders:
        guid = raw_order.get("guid") if isinstance(raw_order, dict) else None
        if guid and guid in positions:
            unique[positions[guid]] = raw_order
            continue
        if guid:
            positions[guid] = len(unique)
        unique.append(raw_order)
    return unique


class OrderSyncService:
    """
    Runs one synchronization for a tenant:
    pending -> fetching -> matching -> persisting -> success | failed
    """

    def __init__(
        self,
        db: Session,
        client_factory: Optional[Callable[[PosIntegration], BasePOSClient]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.client_factory = client_factory or integration_service.get_client_for_integration
        self.clock = clock
        self.phase = SyncPhase.PENDING

    def _enter(self, phase: SyncPhase, tenant_id: str):
        logger.debug(f"[sync:{tenant_id}] {self.phase.value} -> {phase.value}")
        self.phase = phase

    def resolve_window(
        self,
        integration: PosIntegration,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        full_sync: bool = False,
        days_back: Optional[int] = None,
    ) -> Tuple[datetime, datetime]:
        """Explicit dates win, then the last successful sync, then `days_back` days ago"""
        now = self.clock()
        end = end_date or now

        if start_date:
            start = start_date
        elif integration.last_sync_at and not full_sync:
            start = integration.last_sync_at
        else:
            start = now - timedelta(days=days_back or settings.SYNC_DAYS_BACK)

        return start, end

    def build_lead_index(self, tenant_id: str) -> LeadIndex:
        leads = self.db.query(Lead.id, Lead.email, Lead.phone).filter(Lead.tenant_id == tenant_id).all()
        return LeadIndex.build({"id": lead.id, "email": lead.email, "phone": lead.phone} for lead in leads)

    def _fail(self, integration: PosIntegration, message: str, status: Optional[str] = None):
        self._enter(SyncPhase.FAILED, integration.tenant_id)
        self.db.rollback()
        if status is None:
            integration.mark_failed(message)
        else:
            integration.last_sync_status = status
            integration.last_sync_error = message
        self.db.commit()

    async def run_sync(
        self,
        tenant_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        full_sync: bool = False,
        days_back: Optional[int] = None,
    ) -> SyncRunStats:
        """
        Sync one tenant's orders for a window.
        Raises IntegrationNotFound before any network call, and re-raises fetch
        failures after recording them on the integration.
        """
        self.phase = SyncPhase.PENDING

        integration = integration_service.get_active_integration(self.db, tenant_id)
        if not integration:
            self._enter(SyncPhase.FAILED, tenant_id)
            raise IntegrationNotFound(tenant_id)

        previous_status = integration.last_sync_status
        integration.mark_in_progress()
        self.db.commit()

        start, end = self.resolve_window(integration, start_date, end_date, full_sync, days_back)
        stats = SyncRunStats(start_date=start, end_date=end)

        try:
            self._enter(SyncPhase.FETCHING, tenant_id)
            logger.info(f"[sync:{tenant_id}] Fetching orders from {start.isoformat()} to {end.isoformat()}")
            client = self.client_factory(integration)
            raw_orders = await client.get_orders(start, end)

            self._enter(SyncPhase.MATCHING, tenant_id)
            lead_index = self.build_lead_index(tenant_id)
        except RateLimited as e:
            logger.warning(f"[sync:{tenant_id}] Rate limited by Toast (retry after: {e.retry_after})")
            self._fail(integration, str(e), status=previous_status)
            raise
        except Exception as e:
            logger.error(f"[sync:{tenant_id}] Sync failed: {e}")
            self._fail(integration, str(e))
            raise

        self._enter(SyncPhase.PERSISTING, tenant_id)
        orders = dedupe_orders(raw_orders)
        stats.orders_processed = len(orders)
        synced_at = self.clock()

        for raw_order in orders:
            try:
                matched, items, payments = self._persist_order(raw_order, tenant_id, lead_index, synced_at)
            except Exception as e:
                self.db.rollback()
                guid = raw_order.get("guid") if isinstance(raw_order, dict) else None
                error = PerOrderPersistError(guid, e)
                logger.error(f"[sync:{tenant_id}] {error}")
                stats.orders_skipped += 1
                stats.errors.append(str(error))
                continue

            stats.orders_upserted += 1
            stats.leads_matched += int(matched)
            stats.line_items_inserted += items
            stats.payments_inserted += payments

        integration.mark_success(self.clock())
        self.db.commit()
        self._enter(SyncPhase.SUCCESS, tenant_id)

        logger.info(
            f"[sync:{tenant_id}] Sync completed: processed={stats.orders_processed}, "
            f"upserted={stats.orders_upserted}, skipped={stats.orders_skipped}, "
            f"leads_matched={stats.leads_matched}, items={stats.line_items_inserted}, "
            f"payments={stats.payments_inserted}"
        )
        return stats

    def _persist_order(
        self,
        raw_order: Dict[str, Any],
        tenant_id: str,
        lead_index: LeadIndex,
        synced_at: datetime,
    ) -> Tuple[bool, int, int]:
        """
        Normalize, match and upsert one order with its items and payments, then commit.
        Returns (lead matched, line items written, payments written).
        """
        result: NormalizationResult = normalize_order(raw_order, tenant_id, synced_at)
        result.order.lead_id = match_lead(result.order, lead_index)

        order_id = store.upsert(self.db, PosOrder, result.order.to_record(), ORDER_KEYS)

        # Parents precede their modifiers, so parent ids are always known here
        item_ids: Dict[str, Any] = {}
        for item in result.line_items:
            record = item.to_record()
            record["order_id"] = order_id
            record["parent_item_id"] = item_ids[item.parent_selection_guid] if item.is_modifier else None
            item_ids[item.pos_selection_guid] = store.upsert(self.db, PosOrderItem, record, ITEM_KEYS)

        for payment in result.payments:
            record = payment.to_record()
            record["order_id"] = order_id
            store.upsert(self.db, PosPayment, record, PAYMENT_KEYS)

        self.db.commit()
        return result.order.lead_id is not None, len(result.line_items), len(result.payments)

    async def sync_order(self, tenant_id: str, order_guid: str) -> Optional[Any]:
        """
        Re-fetch and upsert a single order outside a full run.
        Integration status is left untouched. Returns the lead id it matched, if any.
        """
        integration = integration_service.get_active_integration(self.db, tenant_id)
        if not integration:
            raise IntegrationNotFound(tenant_id)

        client = self.client_factory(integration)
        raw_order = await client.get_order(order_guid)

        try:
            matched, _, _ = self._persist_order(raw_order, tenant_id, self.build_lead_index(tenant_id), self.clock())
        except Exception:
            self.db.rollback()
            raise

        order = self.db.query(PosOrder).filter_by(tenant_id=tenant_id, pos_order_guid=order_guid).first()
        logger.info(f"[sync:{tenant_id}] Synced single order {order_guid} (lead matched: {matched})")
        return order.lead_id if order else None


async def sync_tenant(
    db: Session,
    tenant_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    full_sync: bool = False,
    days_back: Optional[int] = None,
) -> SyncRunStats:
    """
    Sync orders for one tenant with the default Toast client
    """
    service = OrderSyncService(db)
    return await service.run_sync(tenant_id, start_date, end_date, full_sync, days_back)
