"""
PopupConfig Model - Per-store popup appearance and behavior
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from newsletter_popup.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

DISPLAY_TRIGGERS = ("immediate", "after-5s", "scroll-50", "exit-intent")

DEFAULT_TITLE = "LOOKING FOR EXCLUSIVE OFFERS?"
DEFAULT_SUBTITLE = (
    "Sign up with your business email ID to receive a one-time 15% discount code "
    "for your next order."
)


def default_fields() -> dict:
    return {
        "email": True,
        "name": False,
        "phone": False,
        "company": False,
        "address": False,
    }


def default_email_validation() -> dict:
    return {
        "companyEmailsOnly": True,
        "allowedDomains": [],
        "blockedDomains": ["gmail.com", "yahoo.com", "hotmail.com", "outlook.com"],
    }


class PopupConfig(Base):
    """
    Popup configuration for a store. One row per store.
    """

    __tablename__ = "popup_configs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Store relationship
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # Content
    title = Column(Text, nullable=False, default=DEFAULT_TITLE)
    subtitle = Column(Text, nullable=False, default=DEFAULT_SUBTITLE)
    button_text = Column(String(100), nullable=False, default="SUBMIT")

    # Form fields and validation rules (JSON)
    fields = Column(JSONType, nullable=False, default=default_fields)
    email_validation = Column(JSONType, nullable=False, default=default_email_validation)

    # Offer
    discount_code = Column(String(100), nullable=False, default="WELCOME15")
    discount_percentage = Column(Integer, nullable=False, default=15)

    # Behavior
    display_trigger = Column(String(50), nullable=False, default="immediate")
    animation = Column(String(50), nullable=False, default="slide-in")
    show_exit_intent_if_not_subscribed = Column(Boolean, nullable=False, default=False)
    suppress_after_subscription = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    store = relationship("Store", back_populates="popup_config")

    def __repr__(self) -> str:
        return f"<PopupConfig {self.store_id}: {self.title}>"

    @property
    def enabled_fields(self) -> dict:
        """Field toggles merged over the defaults."""
        merged = default_fields()
        merged.update({k: bool(v) for k, v in (self.fields or {}).items() if k in merged})
        return merged

    @property
    def email_rules(self) -> dict:
        """Email validation rules merged over the defaults."""
        merged = default_email_validation()
        merged.update(self.email_validation or {})
        return merged

    def update_from(self, **updates) -> None:
        """Apply a partial update."""
        for key, value in updates.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown popup setting: {key}")
            setattr(self, key, value)
        self.updated_at = datetime.utcnow()
