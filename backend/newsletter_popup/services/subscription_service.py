"""
Subscription Service
Handles popup signups and the side effects that follow them
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_popup.models import PopupConfig, Store, Subscriber
from newsletter_popup.services.email_notifier import EmailNotifier
from newsletter_popup.services.shopify_client import ShopifyAPIError, ShopifyClient
from newsletter_popup.utils.email_validation import check_email
from newsletter_popup.utils.encryption import decrypt_token

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "This email is already subscribed to our newsletter"

OPTIONAL_FIELDS = ("name", "phone", "company", "address")


class SubscriptionError(Exception):
    """A signup was rejected. Carries the form field at fault."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"message": self.message, "field": self.field}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class SubscriptionService:
    """Service for newsletter signups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_subscriber(self, store_id: str, email: str) -> Optional[Subscriber]:
        """Get a subscriber by store and email, active or not."""
        result = await self.db.execute(
            select(Subscriber).where(
                Subscriber.store_id == store_id,
                Subscriber.email == email.strip().lower(),
            )
        )
        return result.scalar_one_or_none()

    async def is_subscribed(self, store_id: str, email: str) -> bool:
        """Check if an email has an active subscription for a store."""
        subscriber = await self.get_subscriber(store_id, email)
        return bool(subscriber and subscriber.is_active)

    async def subscribe(
        self,
        store: Store,
        config: PopupConfig,
        email: Optional[str],
        session_id: Optional[str] = None,
        **fields,
    ) -> Tuple[Subscriber, bool]:
        """
        Subscribe an email address to a store's newsletter.

        Args:
            store: Store the popup belongs to
            config: Store popup configuration
            email: Submitted address
            session_id: Browser session that submitted the form
            **fields: Optional name, phone, company, address

        Returns:
            Tuple of (subscriber, created) where created is False for a
            reactivated subscription

        Raises:
            SubscriptionError: On validation failure or duplicate signup
        """
        email = _clean(email)
        if not email:
            raise SubscriptionError("Email is required", "email")

        problem = check_email(email, config.email_rules)
        if problem:
            raise SubscriptionError(problem, "email")

        email = email.lower()
        details = {key: _clean(fields.get(key)) for key in OPTIONAL_FIELDS}
        existing = await self.get_subscriber(store.id, email)

        if existing and existing.is_active:
            raise SubscriptionError(DUPLICATE_MESSAGE, "email")

        if existing:
            existing.reactivate(discount_code=config.discount_code, session_id=session_id)
            for key, value in details.items():
                if value:
                    setattr(existing, key, value)
            await self.db.commit()
            logger.info(f"Reactivated subscriber {existing.id} for store {store.id}")
            return existing, False

        subscriber = Subscriber(
            store_id=store.id,
            email=email,
            session_id=session_id,
            discount_code_sent=config.discount_code,
            **details,
        )
        self.db.add(subscriber)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent signup for the same address won the insert
            await self.db.rollback()
            raise SubscriptionError(DUPLICATE_MESSAGE, "email")

        logger.info(f"New subscriber {subscriber.id} for store {store.id}")
        return subscriber, True


async def send_subscription_emails(
    store_name: str,
    email: str,
    discount_code: str,
    discount_percentage: int,
    details: dict,
) -> None:
    """Welcome the subscriber and notify the admin. Never raises."""
    notifier = EmailNotifier()
    try:
        await notifier.send_welcome_email(
            email,
            store_name,
            discount_code,
            discount_percentage,
            name=details.get("name"),
        )
    except Exception as e:
        logger.exception(f"Welcome email failed for store {store_name}: {e}")

    try:
        await notifier.send_admin_notification(store_name, email, details)
    except Exception as e:
        logger.exception(f"Admin notification failed for store {store_name}: {e}")


async def tag_shopify_customer(
    shop_url: str,
    encrypted_token: str,
    email: str,
    details: dict,
) -> None:
    """Tag the subscriber as a newsletter customer in Shopify. Never raises."""
    try:
        name_parts = (details.get("name") or "").split(" ", 1)
        async with ShopifyClient(shop_url, decrypt_token(encrypted_token)) as client:
            await client.tag_newsletter_subscriber(
                email,
                first_name=name_parts[0] or None,
                last_name=name_parts[1] if len(name_parts) > 1 else None,
                phone=details.get("phone"),
                company=details.get("company"),
            )
    except ShopifyAPIError as e:
        logger.warning(f"Shopify tagging failed for {shop_url}: {e.message}")
    except Exception as e:
        logger.exception(f"Shopify tagging failed for {shop_url}: {e}")


async def untag_shopify_customer(shop_url: str, encrypted_token: str, email: str) -> None:
    """Remove the newsletter tag in Shopify. Never raises."""
    try:
        async with ShopifyClient(shop_url, decrypt_token(encrypted_token)) as client:
            await client.remove_newsletter_subscriber_tag(email)
    except ShopifyAPIError as e:
        logger.warning(f"Shopify untagging failed for {shop_url}: {e.message}")
    except Exception as e:
        logger.exception(f"Shopify untagging failed for {shop_url}: {e}")
