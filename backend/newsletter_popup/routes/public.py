"""
Public Routes
Endpoints called by the popup runtime from third-party storefronts
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_popup.config import settings
from newsletter_popup.database import get_db
from newsletter_popup.models import Store
from newsletter_popup.routes.stores import CamelModel
from newsletter_popup.services.script_synthesizer import RUNTIME_SCRIPT_PATH, render_runtime_script
from newsletter_popup.services.store_service import StoreService
from newsletter_popup.services.subscription_service import (
    SubscriptionError,
    SubscriptionService,
    send_subscription_emails,
    tag_shopify_customer,
)
from newsletter_popup.utils.base_url import resolve_public_base_url
from newsletter_popup.utils.domains import host_matches, hostname_from_header, origin_from_header

logger = logging.getLogger(__name__)

router = APIRouter()

ANY_ORIGIN = {"Access-Control-Allow-Origin": "*"}


# ============== Request/Response Models ==============


class PublicPopupConfig(CamelModel):
    """Popup settings safe to hand to any storefront."""

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
    suppress_after_subscription: bool
    show_exit_intent_if_not_subscribed: bool
    is_active: bool
    is_verified: bool
    has_active_script: bool


class SubscribeRequest(CamelModel):
    """Form submission from the popup."""

    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    session_id: Optional[str] = None


class SubscribeResponse(CamelModel):
    """Successful signup."""

    message: str
    discount_code: str
    discount_percentage: int
    reactivated: bool = False


class SubscriptionStatus(BaseModel):
    """Subscription lookup result."""

    isSubscribed: bool


# ============== Helpers ==============


def cors_headers(request: Request, store: Store) -> Dict[str, str]:
    """
    Check the caller's Origin (or Referer) against the store's domains.

    This only keeps honest browsers on other sites from loading the popup;
    a non-browser client can send any header it likes.

    Returns:
        CORS headers echoing the validated origin, or "*" without one

    Raises:
        HTTPException: 403 when the origin belongs to another site
    """
    header = request.headers.get("origin") or request.headers.get("referer")
    if not header:
        return dict(ANY_ORIGIN)

    host = hostname_from_header(header)
    if not host or not host_matches(host, store.allowed_hosts):
        logger.warning(f"Rejected request for store {store.id} from origin {header}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Domain not authorized for this store",
        )

    return {
        "Access-Control-Allow-Origin": origin_from_header(header) or "*",
        "Vary": "Origin",
    }


async def get_public_store(store_id: str, db: AsyncSession) -> Store:
    store = await StoreService(db).get_store(store_id)
    if not store:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Store not found",
            headers=ANY_ORIGIN,
        )
    return store


# ============== Runtime Script ==============


@router.get(RUNTIME_SCRIPT_PATH)
async def get_runtime_script(request: Request):
    """Serve the popup runtime."""
    try:
        content = render_runtime_script(resolve_public_base_url(request))
    except ValueError as e:
        logger.warning(f"Refused runtime script for base URL: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
            headers=ANY_ORIGIN,
        )

    return Response(
        content=content,
        media_type="application/javascript",
        headers={
            "Cache-Control": f"public, max-age={settings.runtime_script_max_age}",
            **ANY_ORIGIN,
        },
    )


# ============== Popup Config ==============


@router.get("/api/popup-config/{store_id}", response_model=PublicPopupConfig)
async def get_popup_config(
    store_id: str,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Get the public popup configuration for a store."""
    store = await get_public_store(store_id, db)
    headers = cors_headers(request, store)

    config = store.popup_config
    if not config:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Popup configuration not found",
            headers=headers,
        )

    response.headers.update(headers)
    return PublicPopupConfig(
        store_id=store.id,
        title=config.title,
        subtitle=config.subtitle,
        button_text=config.button_text,
        fields=config.enabled_fields,
        email_validation=config.email_rules,
        discount_code=config.discount_code,
        discount_percentage=config.discount_percentage,
        display_trigger=config.display_trigger,
        animation=config.animation,
        suppress_after_subscription=config.suppress_after_subscription,
        show_exit_intent_if_not_subscribed=config.show_exit_intent_if_not_subscribed,
        is_active=config.is_active,
        is_verified=store.is_verified,
        has_active_script=store.has_active_script,
    )


# ============== Subscribe ==============


@router.options("/api/subscribe/{store_id}")
async def subscribe_preflight(
    store_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """CORS preflight for the JSON subscribe request."""
    store = await get_public_store(store_id, db)
    headers = cors_headers(request, store)
    headers.update(
        {
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Max-Age": "600",
        }
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)


@router.post("/api/subscribe/{store_id}", response_model=SubscribeResponse)
async def subscribe(
    store_id: str,
    payload: SubscribeRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Subscribe an email address to the store's newsletter."""
    store = await get_public_store(store_id, db)
    headers = cors_headers(request, store)

    config = store.popup_config
    if not config:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Popup configuration not found",
            headers=headers,
        )

    details = payload.model_dump(include={"name", "phone", "company", "address"})
    try:
        subscriber, created = await SubscriptionService(db).subscribe(
            store,
            config,
            payload.email,
            session_id=payload.session_id,
            **details,
        )
    except SubscriptionError as e:
        logger.info(f"Subscription rejected for store {store_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.to_dict(),
            headers=headers,
        )

    background_tasks.add_task(
        send_subscription_emails,
        store.name,
        subscriber.email,
        config.discount_code,
        config.discount_percentage,
        details,
    )
    if store.is_connected and store.shopify_access_token:
        background_tasks.add_task(
            tag_shopify_customer,
            store.shopify_url,
            store.shopify_access_token,
            subscriber.email,
            details,
        )

    response.headers.update(headers)
    return SubscribeResponse(
        message="Successfully subscribed to newsletter",
        discount_code=config.discount_code,
        discount_percentage=config.discount_percentage,
        reactivated=not created,
    )


# ============== Subscription Status ==============


@router.get("/api/stores/{store_id}/check-subscription/{email}", response_model=SubscriptionStatus)
async def check_subscription(
    store_id: str,
    email: str,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """
    Check if an email is actively subscribed.

    Origin checks still reject foreign sites; failures after that answer false.
    """
    store = await get_public_store(store_id, db)
    response.headers.update(cors_headers(request, store))
    try:
        is_subscribed = await SubscriptionService(db).is_subscribed(store_id, email)
    except Exception as e:
        logger.exception(f"Subscription check failed for store {store_id}: {e}")
        is_subscribed = False
    return SubscriptionStatus(isSubscribed=is_subscribed)
