"""
Subscriber Model - Newsletter signups captured by the popup
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from newsletter_popup.database import Base


class Subscriber(Base):
    """
    An email address subscribed to a store's newsletter.
    Unsubscribing keeps the row so the address can be reactivated.
    """

    __tablename__ = "subscribers"
    __table_args__ = (UniqueConstraint("store_id", "email", name="uq_subscribers_store_email"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Store relationship
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Contact details
    email = Column(String(320), nullable=False, index=True)
    name = Column(String(255))
    phone = Column(String(50))
    company = Column(String(255))
    address = Column(Text)

    # Browser session that submitted the form
    session_id = Column(String(100))

    # Offer tracking
    discount_code_sent = Column(String(100))
    discount_code_used = Column(Boolean, default=False, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    subscribed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    unsubscribed_at = Column(DateTime, nullable=True)

    # Relationships
    store = relationship("Store", back_populates="subscribers")

    def __repr__(self) -> str:
        return f"<Subscriber {self.email} ({'active' if self.is_active else 'inactive'})>"

    def reactivate(self, discount_code: Optional[str] = None, session_id: Optional[str] = None) -> None:
        """Bring an unsubscribed address back."""
        self.is_active = True
        self.subscribed_at = datetime.utcnow()
        self.unsubscribed_at = None
        if discount_code:
            self.discount_code_sent = discount_code
        if session_id:
            self.session_id = session_id

    def unsubscribe(self) -> None:
        """Mark the subscriber as unsubscribed."""
        self.is_active = False
        self.unsubscribed_at = datetime.utcnow()
