"""
Integration Service - Manage Toast integrations and build API clients
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import and_
import logging

from possync.core.config import settings
from possync.models.integration import PosIntegration, DEFAULT_API_HOSTNAME
from possync.integrations import ToastClient, TokenCache, ToastCredentials

logger = logging.getLogger(__name__)

# Shared by every client this process builds
token_cache = TokenCache(refresh_buffer_seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS)


def get_integrations(db: Session, is_active: Optional[bool] = None) -> List[PosIntegration]:
    """Get all integrations with optional filter"""
    query = db.query(PosIntegration)
    if is_active is not None:
        query = query.filter(PosIntegration.is_active == is_active)
    return query.order_by(PosIntegration.created_at.desc()).all()


def get_integration(db: Session, tenant_id: str) -> Optional[PosIntegration]:
    """Get integration by tenant, active or not"""
    return db.query(PosIntegration).filter(PosIntegration.tenant_id == tenant_id).first()


def get_active_integration(db: Session, tenant_id: str) -> Optional[PosIntegration]:
    """Get the tenant's integration only if it is active"""
    return db.query(PosIntegration).filter(
        and_(
            PosIntegration.tenant_id == tenant_id,
            PosIntegration.is_active == True,
        )
    ).first()


def save_integration(
    db: Session,
    tenant_id: str,
    restaurant_guid: str,
    toast_client_id: str,
    toast_client_secret: str,
    api_hostname: Optional[str] = None,
) -> PosIntegration:
    """Create or update the tenant's integration; the tenant id is the identity"""
    integration = get_integration(db, tenant_id)
    if integration is None:
        integration = PosIntegration(tenant_id=tenant_id)
        db.add(integration)

    integration.restaurant_guid = restaurant_guid
    integration.toast_client_id = toast_client_id
    integration.toast_client_secret = toast_client_secret
    integration.api_hostname = api_hostname or DEFAULT_API_HOSTNAME
    integration.is_active = True

    db.commit()
    db.refresh(integration)

    logger.info(f"Saved Toast integration: tenant={tenant_id} restaurant={restaurant_guid}")
    return integration


def delete_integration(db: Session, tenant_id: str) -> bool:
    """Delete the tenant's integration"""
    integration = get_integration(db, tenant_id)
    if not integration:
        return False

    token_cache.invalidate(credentials_for(integration))
    db.delete(integration)
    db.commit()

    logger.info(f"Deleted Toast integration: tenant={tenant_id}")
    return True


def credentials_for(integration: PosIntegration) -> ToastCredentials:
    return ToastCredentials(
        client_id=integration.toast_client_id,
        client_secret=integration.toast_client_secret,
        restaurant_guid=integration.restaurant_guid,
        api_hostname=integration.api_hostname or DEFAULT_API_HOSTNAME,
    )


def build_client(credentials: ToastCredentials) -> ToastClient:
    """Toast client wired to the shared token cache and configured limits"""
    return ToastClient(
        credentials,
        token_cache=token_cache,
        page_size=settings.TOAST_PAGE_SIZE,
        timeout=settings.TOAST_HTTP_TIMEOUT,
    )


def get_client_for_integration(integration: PosIntegration) -> ToastClient:
    """Create a Toast client from a stored integration"""
    return build_client(credentials_for(integration))
