"""
Store Model - Storefront and popup integration state
"""

from datetime import datetime
from typing import List
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from newsletter_popup.database import Base
from newsletter_popup.utils.domains import normalize_domain, to_url


class Store(Base):
    """
    Represents a storefront that embeds the newsletter popup.
    Holds the Shopify credentials and the currently blessed script version.
    """

    __tablename__ = "stores"
    __table_args__ = (
        CheckConstraint(
            "(active_script_version IS NULL) = (active_script_timestamp IS NULL)",
            name="ck_stores_active_script_pair",
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Owner identity from the auth gate
    user_id = Column(String(36), index=True)

    # Storefront identification
    name = Column(String(255), nullable=False)
    shopify_url = Column(Text, nullable=False)
    shopify_store_name = Column(String(255))
    custom_domain = Column(Text)

    # Commerce credentials
    shopify_access_token = Column(Text)  # Encrypted
    is_connected = Column(Boolean, default=False, nullable=False)

    # Installation state
    is_verified = Column(Boolean, default=False, nullable=False)
    active_script_version = Column(Text)
    active_script_timestamp = Column(Text)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    popup_config = relationship(
        "PopupConfig",
        back_populates="store",
        uselist=False,
        cascade="all, delete-orphan",
    )
    subscribers = relationship(
        "Subscriber",
        back_populates="store",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Store {self.id}: {self.name}>"

    @property
    def target_domain(self) -> str:
        """Hostname the popup is embedded on, preferring the custom domain."""
        if self.custom_domain:
            return normalize_domain(self.custom_domain)
        return normalize_domain(self.shopify_url)

    @property
    def allowed_hosts(self) -> List[str]:
        """Hostnames a public request may originate from."""
        hosts = []
        for value in (self.shopify_url, self.custom_domain):
            if not value:
                continue
            try:
                hosts.append(normalize_domain(value))
            except ValueError:
                continue
        return hosts

    @property
    def verification_urls(self) -> List[str]:
        """Candidate pages to check for the snippet, custom domain first."""
        urls = []
        for value in (self.custom_domain, self.shopify_url):
            if value and value.strip():
                url = to_url(value)
                if url not in urls:
                    urls.append(url)
        return urls

    @property
    def has_active_script(self) -> bool:
        """Check if a script version has been generated for this store."""
        return bool(self.active_script_version and self.active_script_timestamp)

    def set_active_script(self, version: str, timestamp: str) -> None:
        """Record the blessed script version. Both values are always written together."""
        if not version or not timestamp:
            raise ValueError("Script version and timestamp must both be set")
        self.active_script_version = version
        self.active_script_timestamp = timestamp
        self.updated_at = datetime.utcnow()

    def mark_verified(self, verified: bool) -> None:
        """Record the outcome of an installation check."""
        self.is_verified = verified
        self.updated_at = datetime.utcnow()
