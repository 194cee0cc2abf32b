"""
Admin API Routes
Store management, popup configuration, subscribers and script integration
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_popup.database import get_db
from newsletter_popup.middleware.auth import require_permission
from newsletter_popup.models import PopupConfig, Store, Subscriber
from newsletter_popup.models.popup_config import default_fields
from newsletter_popup.services.installation_verifier import InstallationVerifier
from newsletter_popup.services.script_version_tracker import ScriptVersionTracker
from newsletter_popup.services.shopify_client import ShopifyAPIError
from newsletter_popup.services.store_service import StoreService
from newsletter_popup.services.subscription_service import untag_shopify_customer
from newsletter_popup.utils.base_url import resolve_public_base_url
from newsletter_popup.utils.encryption import decrypt_token, mask_token

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Request/Response Models ==============


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoreResponse(CamelModel):
    """Store response model."""

    id: str
    user_id: Optional[str] = None
    name: str
    shopify_url: str
    shopify_store_name: Optional[str] = None
    custom_domain: Optional[str] = None
    shopify_access_token: Optional[str] = None
    is_connected: bool
    is_verified: bool
    active_script_version: Optional[str] = None
    active_script_timestamp: Optional[str] = None
    has_active_script: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StoreCreateRequest(CamelModel):
    """Request to create a store."""

    name: str
    shopify_url: str
    custom_domain: Optional[str] = None
    shopify_store_name: Optional[str] = None
    user_id: Optional[str] = None


class StoreUpdateRequest(CamelModel):
    """Request to update a store."""

    name: Optional[str] = None
    shopify_url: Optional[str] = None
    custom_domain: Optional[str] = None
    shopify_store_name: Optional[str] = None


class EmailValidationRules(CamelModel):
    """Company email rules applied to signups."""

    company_emails_only: bool = True
    allowed_domains: List[str] = []
    blocked_domains: List[str] = []


class PopupConfigResponse(CamelModel):
    """Popup configuration response model."""

    id: str
    store_id: str
    title: str
    subtitle: str
    button_text: str
    fields: Dict[str, bool]
    email_validation: dict
    discount_code: str
    discount_percentage: int
    display_trigger: str
    animation: str
    show_exit_intent_if_not_subscribed: bool
    suppress_after_subscription: bool
    is_active: bool
    updated_at: Optional[datetime] = None


class PopupConfigUpdateRequest(CamelModel):
    """Partial popup configuration update."""

    title: Optional[str] = None
    subtitle: Optional[str] = None
    button_text: Optional[str] = None
    fields: Optional[Dict[str, bool]] = None
    email_validation: Optional[EmailValidationRules] = None
    discount_code: Optional[str] = None
    discount_percentage: Optional[int] = None
    display_trigger: Optional[str] = None
    animation: Optional[str] = None
    show_exit_intent_if_not_subscribed: Optional[bool] = None
    suppress_after_subscription: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("fields")
    @classmethod
    def known_fields(cls, value):
        if value is None:
            return value
        unknown = set(value) - set(default_fields())
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")
        return value


class SubscriberResponse(CamelModel):
    """Subscriber response model."""

    id: str
    store_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    session_id: Optional[str] = None
    discount_code_sent: Optional[str] = None
    discount_code_used: bool
    is_active: bool
    subscribed_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None


class ShopifyConnectRequest(CamelModel):
    """Request to connect a store to Shopify."""

    access_token: str
    shopify_url: Optional[str] = None


# ============== Helpers ==============


def _masked_token(store: Store) -> Optional[str]:
    if not store.shopify_access_token:
        return None
    try:
        return mask_token(decrypt_token(store.shopify_access_token))
    except ValueError:
        return "********"


def store_response(store: Store) -> StoreResponse:
    return StoreResponse(
        id=store.id,
        user_id=store.user_id,
        name=store.name,
        shopify_url=store.shopify_url,
        shopify_store_name=store.shopify_store_name,
        custom_domain=store.custom_domain,
        shopify_access_token=_masked_token(store),
        is_connected=store.is_connected,
        is_verified=store.is_verified,
        active_script_version=store.active_script_version,
        active_script_timestamp=store.active_script_timestamp,
        has_active_script=store.has_active_script,
        created_at=store.created_at,
        updated_at=store.updated_at,
    )


def popup_response(config: PopupConfig) -> PopupConfigResponse:
    return PopupConfigResponse(
        id=config.id,
        store_id=config.store_id,
        title=config.title,
        subtitle=config.subtitle,
        button_text=config.button_text,
        fields=config.enabled_fields,
        email_validation=config.email_rules,
        discount_code=config.discount_code,
        discount_percentage=config.discount_percentage,
        display_trigger=config.display_trigger,
        animation=config.animation,
        show_exit_intent_if_not_subscribed=config.show_exit_intent_if_not_subscribed,
        suppress_after_subscription=config.suppress_after_subscription,
        is_active=config.is_active,
        updated_at=config.updated_at,
    )


def subscriber_response(subscriber: Subscriber) -> SubscriberResponse:
    return SubscriberResponse(
        id=subscriber.id,
        store_id=subscriber.store_id,
        email=subscriber.email,
        name=subscriber.name,
        phone=subscriber.phone,
        company=subscriber.company,
        address=subscriber.address,
        session_id=subscriber.session_id,
        discount_code_sent=subscriber.discount_code_sent,
        discount_code_used=subscriber.discount_code_used,
        is_active=subscriber.is_active,
        subscribed_at=subscriber.subscribed_at,
        unsubscribed_at=subscriber.unsubscribed_at,
    )


async def load_store(store_id: str, auth: dict, db: AsyncSession) -> Store:
    """Load a store the caller may access, or 404."""
    store = await StoreService(db).get_store_for(store_id, auth)
    if not store:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Store not found",
        )
    return store


def bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ============== Store Endpoints ==============


@router.get("", response_model=List[StoreResponse])
async def list_stores(
    auth: dict = Depends(require_permission("stores:read")),
    db: AsyncSession = Depends(get_db),
):
    """List stores visible to the caller."""
    stores = await StoreService(db).list_stores(auth)
    return [store_response(s) for s in stores]


@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def create_store(
    request: StoreCreateRequest,
    auth: dict = Depends(require_permission("stores:write")),
    db: AsyncSession = Depends(get_db),
):
    """Create a store with a default popup configuration."""
    # Only operators may create stores on behalf of another user
    user_id = request.user_id if auth.get("role") == "admin" else auth.get("user_id")

    try:
        store = await StoreService(db).create_store(
            name=request.name,
            shopify_url=request.shopify_url,
            custom_domain=request.custom_domain,
            shopify_store_name=request.shopify_store_name,
            user_id=user_id,
        )
    except ValueError as e:
        raise bad_request(e)

    return store_response(store)


@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(
    store_id: str,
    auth: dict = Depends(require_permission("stores:read")),
    db: AsyncSession = Depends(get_db),
):
    """Get a store."""
    store = await load_store(store_id, auth, db)
    return store_response(store)


@router.put("/{store_id}", response_model=StoreResponse)
async def update_store(
    store_id: str,
    request: StoreUpdateRequest,
    auth: dict = Depends(require_permission("stores:write")),
    db: AsyncSession = Depends(get_db),
):
    """Update a store."""
    store = await load_store(store_id, auth, db)

    try:
        store = await StoreService(db).update_store(store, **request.model_dump(exclude_unset=True))
    except ValueError as e:
        raise bad_request(e)

    return store_response(store)


@router.delete("/{store_id}")
async def delete_store(
    store_id: str,
    auth: dict = Depends(require_permission("stores:write")),
    db: AsyncSession = Depends(get_db),
):
    """Delete a store and everything attached to it."""
    store = await load_store(store_id, auth, db)
    await StoreService(db).delete_store(store)
    return {"status": "deleted", "id": store_id}


# ============== Popup Endpoints ==============


@router.get("/{store_id}/popup", response_model=PopupConfigResponse)
async def get_popup_config(
    store_id: str,
    auth: dict = Depends(require_permission("stores:read")),
    db: AsyncSession = Depends(get_db),
):
    """Get the store's popup configuration."""
    store = await load_store(store_id, auth, db)
    if not store.popup_config:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Popup configuration not found",
        )
    return popup_response(store.popup_config)


@router.put("/{store_id}/popup", response_model=PopupConfigResponse)
async def update_popup_config(
    store_id: str,
    request: PopupConfigUpdateRequest,
    auth: dict = Depends(require_permission("popup:write")),
    db: AsyncSession = Depends(get_db),
):
    """Update the store's popup configuration."""
    store = await load_store(store_id, auth, db)

    updates = request.model_dump(exclude_unset=True, exclude={"email_validation"})
    if request.email_validation is not None:
        # Rules omitted from the request keep their current values
        current = store.popup_config.email_rules if store.popup_config else {}
        updates["email_validation"] = {
            **current,
            **request.email_validation.model_dump(by_alias=True, exclude_unset=True),
        }

    try:
        config = await StoreService(db).update_popup_config(store, **updates)
    except ValueError as e:
        raise bad_request(e)

    return popup_response(config)


# ============== Subscriber Endpoints ==============


@router.get("/{store_id}/subscribers", response_model=List[SubscriberResponse])
async def list_subscribers(
    store_id: str,
    auth: dict = Depends(require_permission("subscribers:read")),
    db: AsyncSession = Depends(get_db),
):
    """List active subscribers."""
    store = await load_store(store_id, auth, db)
    subscribers = await StoreService(db).list_subscribers(store)
    return [subscriber_response(s) for s in subscribers]


@router.delete("/{store_id}/subscribers/{subscriber_id}", response_model=SubscriberResponse)
async def unsubscribe_subscriber(
    store_id: str,
    subscriber_id: str,
    background_tasks: BackgroundTasks,
    auth: dict = Depends(require_permission("subscribers:write")),
    db: AsyncSession = Depends(get_db),
):
    """Unsubscribe a subscriber and remove their Shopify tag."""
    store = await load_store(store_id, auth, db)
    service = StoreService(db)

    subscriber = await service.get_subscriber(store, subscriber_id)
    if not subscriber:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscriber not found",
        )

    subscriber = await service.unsubscribe(subscriber)

    if store.is_connected and store.shopify_access_token:
        background_tasks.add_task(
            untag_shopify_customer,
            store.shopify_url,
            store.shopify_access_token,
            subscriber.email,
        )

    return subscriber_response(subscriber)


# ============== Shopify Endpoints ==============


@router.post("/{store_id}/shopify/connect", response_model=StoreResponse)
async def connect_shopify(
    store_id: str,
    request: ShopifyConnectRequest,
    auth: dict = Depends(require_permission("integration:manage")),
    db: AsyncSession = Depends(get_db),
):
    """Verify Shopify credentials and save them."""
    store = await load_store(store_id, auth, db)

    try:
        store = await StoreService(db).connect_shopify(store, request.access_token, request.shopify_url)
    except ValueError as e:
        raise bad_request(e)
    except ShopifyAPIError as e:
        logger.error(f"Shopify connect failed for store {store_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify error: {e.message}",
        )

    return store_response(store)


@router.post("/{store_id}/shopify/verify")
async def verify_shopify_discount(
    store_id: str,
    auth: dict = Depends(require_permission("integration:manage")),
    db: AsyncSession = Depends(get_db),
):
    """Check that the popup's discount code exists in Shopify."""
    store = await load_store(store_id, auth, db)

    try:
        return await StoreService(db).verify_discount_code(store)
    except ValueError as e:
        raise bad_request(e)
    except ShopifyAPIError as e:
        logger.error(f"Shopify discount check failed for store {store_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Shopify error: {e.message}",
        )


# ============== Integration Endpoints ==============


@router.get("/{store_id}/integration-script", response_class=PlainTextResponse)
async def get_integration_script(
    store_id: str,
    request: Request,
    regenerate: bool = Query(False),
    auth: dict = Depends(require_permission("integration:manage")),
    db: AsyncSession = Depends(get_db),
):
    """Get the snippet to paste into the storefront theme."""
    store = await load_store(store_id, auth, db)
    base_url = resolve_public_base_url(request)

    try:
        script = await ScriptVersionTracker(db).resolve(store, base_url, force_regenerate=regenerate)
    except ValueError as e:
        raise bad_request(e)

    return PlainTextResponse(
        script.snippet,
        headers={
            "X-Script-Version": script.version,
            "X-Script-Generated-At": script.timestamp,
        },
    )


@router.get("/{store_id}/verify-installation")
async def verify_installation(
    store_id: str,
    request: Request,
    auth: dict = Depends(require_permission("integration:manage")),
    db: AsyncSession = Depends(get_db),
):
    """Check whether the current snippet is live on the storefront."""
    store = await load_store(store_id, auth, db)
    base_url = resolve_public_base_url(request)

    try:
        report = await InstallationVerifier(db).verify(store, base_url)
    except ValueError as e:
        raise bad_request(e)

    return report.to_dict()
