"""
Store Service
Manages stores, their popup configuration, subscribers and Shopify credentials
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from newsletter_popup.config import settings
from newsletter_popup.models import PopupConfig, Store, Subscriber
from newsletter_popup.models.popup_config import DISPLAY_TRIGGERS
from newsletter_popup.services.shopify_client import ShopifyClient
from newsletter_popup.utils.domains import normalize_domain
from newsletter_popup.utils.encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

DOMAIN_FIELDS = ("shopify_url", "custom_domain")
STORE_FIELDS = ("name", "shopify_url", "shopify_store_name", "custom_domain")
ANIMATIONS = ("slide-in", "fade-in")


def _validate_domain(field: str, value: Optional[str], required: bool = False) -> Optional[str]:
    if value is None or not value.strip():
        if required:
            raise ValueError(f"{field} is required")
        return None
    normalize_domain(value)
    return value.strip()


def can_access_store(auth: dict, store: Store) -> bool:
    """Admins see every store; other callers only their own."""
    if auth.get("role") == "admin":
        return True
    return bool(store.user_id) and store.user_id == auth.get("user_id")


class StoreService:
    """Service for managing stores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_store(self, store_id: str) -> Optional[Store]:
        """Get store by ID with its popup configuration loaded."""
        result = await self.db.execute(
            select(Store)
            .options(selectinload(Store.popup_config))
            .where(Store.id == store_id)
        )
        return result.scalar_one_or_none()

    async def get_store_for(self, store_id: str, auth: dict) -> Optional[Store]:
        """Get a store if the caller may access it."""
        store = await self.get_store(store_id)
        if store is None or not can_access_store(auth, store):
            return None
        return store

    async def list_stores(self, auth: dict) -> List[Store]:
        """List stores visible to the caller."""
        query = select(Store).options(selectinload(Store.popup_config)).order_by(Store.created_at)
        if auth.get("role") != "admin":
            query = query.where(Store.user_id == auth.get("user_id"))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_store(
        self,
        name: str,
        shopify_url: str,
        user_id: Optional[str] = None,
        custom_domain: Optional[str] = None,
        shopify_store_name: Optional[str] = None,
    ) -> Store:
        """
        Create a store with a default popup configuration.

        Raises:
            ValueError: If the name is empty or a domain is invalid
        """
        if not name or not name.strip():
            raise ValueError("name is required")

        store = Store(
            name=name.strip(),
            shopify_url=_validate_domain("shopify_url", shopify_url, required=True),
            custom_domain=_validate_domain("custom_domain", custom_domain),
            shopify_store_name=shopify_store_name,
            user_id=user_id,
        )
        store.popup_config = PopupConfig(
            discount_code=settings.default_discount_code,
            discount_percentage=settings.default_discount_percentage,
        )

        self.db.add(store)
        await self.db.commit()

        logger.info(f"Store created: {store.id} ({store.name})")
        return await self.get_store(store.id)

    async def update_store(self, store: Store, **updates) -> Store:
        """
        Update store fields.

        Changing either domain clears the verified flag, since the
        installed snippet no longer matches the store.
        """
        for key, value in updates.items():
            if key not in STORE_FIELDS:
                raise ValueError(f"Unknown store field: {key}")
            if key == "name" and (not value or not value.strip()):
                raise ValueError("name is required")
            if key in DOMAIN_FIELDS:
                value = _validate_domain(key, value, required=key == "shopify_url")
                if value != getattr(store, key):
                    store.is_verified = False
            setattr(store, key, value)

        store.updated_at = datetime.utcnow()
        await self.db.commit()
        return store

    async def delete_store(self, store: Store) -> None:
        """Delete a store with its configuration and subscribers."""
        await self.db.delete(store)
        await self.db.commit()
        logger.info(f"Store deleted: {store.id}")

    async def update_popup_config(self, store: Store, **updates) -> PopupConfig:
        """
        Apply a partial popup configuration update.

        Raises:
            ValueError: On an invalid setting value
        """
        config = store.popup_config
        if config is None:
            config = PopupConfig(store_id=store.id)
            self.db.add(config)
            store.popup_config = config

        trigger = updates.get("display_trigger")
        if trigger is not None and trigger not in DISPLAY_TRIGGERS:
            raise ValueError(f"display_trigger must be one of: {', '.join(DISPLAY_TRIGGERS)}")

        animation = updates.get("animation")
        if animation is not None and animation not in ANIMATIONS:
            raise ValueError(f"animation must be one of: {', '.join(ANIMATIONS)}")

        percentage = updates.get("discount_percentage")
        if percentage is not None and not 0 < percentage <= 100:
            raise ValueError("discount_percentage must be between 1 and 100")

        if "discount_code" in updates and not (updates["discount_code"] or "").strip():
            raise ValueError("discount_code is required")

        config.update_from(**updates)
        await self.db.commit()
        return config

    async def list_subscribers(self, store: Store) -> List[Subscriber]:
        """List active subscribers, newest first."""
        result = await self.db.execute(
            select(Subscriber)
            .where(Subscriber.store_id == store.id, Subscriber.is_active == True)  # noqa: E712
            .order_by(Subscriber.subscribed_at.desc())
        )
        return list(result.scalars().all())

    async def get_subscriber(self, store: Store, subscriber_id: str) -> Optional[Subscriber]:
        """Get a subscriber belonging to a store."""
        result = await self.db.execute(
            select(Subscriber).where(
                Subscriber.id == subscriber_id,
                Subscriber.store_id == store.id,
            )
        )
        return result.scalar_one_or_none()

    async def unsubscribe(self, subscriber: Subscriber) -> Subscriber:
        """Mark a subscriber as unsubscribed."""
        subscriber.unsubscribe()
        await self.db.commit()
        logger.info(f"Subscriber {subscriber.id} unsubscribed from store {subscriber.store_id}")
        return subscriber

    async def connect_shopify(
        self,
        store: Store,
        access_token: str,
        shopify_url: Optional[str] = None,
    ) -> Store:
        """
        Verify Shopify credentials and store the encrypted access token.

        Raises:
            ValueError: If the token is empty or Shopify rejects it
            ShopifyAPIError: If the shop information cannot be loaded
        """
        if not access_token or not access_token.strip():
            raise ValueError("access_token is required")

        shop_url = _validate_domain("shopify_url", shopify_url) or store.shopify_url
        access_token = access_token.strip()

        async with ShopifyClient(shop_url, access_token) as client:
            if not await client.verify_connection():
                raise ValueError("Could not connect to Shopify with the provided credentials")
            shop = await client.get_shop()

        if shop_url != store.shopify_url:
            store.shopify_url = shop_url
            store.is_verified = False
        store.shopify_access_token = encrypt_token(access_token)
        store.shopify_store_name = shop.get("name") or store.shopify_store_name
        store.is_connected = True
        store.updated_at = datetime.utcnow()

        await self.db.commit()
        logger.info(f"Store {store.id} connected to Shopify shop {client.shop_host}")
        return store

    async def verify_discount_code(self, store: Store) -> Dict[str, Any]:
        """
        Check that the popup's discount code exists in Shopify.

        Raises:
            ValueError: If the store is not connected to Shopify
            ShopifyAPIError: If Shopify cannot be reached
        """
        if not store.is_connected or not store.shopify_access_token:
            raise ValueError("Store is not connected to Shopify")

        code = store.popup_config.discount_code if store.popup_config else settings.default_discount_code
        async with ShopifyClient(store.shopify_url, self.get_decrypted_token(store)) as client:
            discount = await client.lookup_discount_code(code)

        return {
            "discountCode": code,
            "exists": discount is not None,
            "usageCount": discount.get("usage_count") if discount else None,
        }

    def get_decrypted_token(self, store: Store) -> str:
        """Get decrypted access token for a store."""
        return decrypt_token(store.shopify_access_token)
