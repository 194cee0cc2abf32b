"""
Database models for the newsletter popup service
"""

from newsletter_popup.models.store import Store
from newsletter_popup.models.popup_config import PopupConfig
from newsletter_popup.models.subscriber import Subscriber

__all__ = [
    "Store",
    "PopupConfig",
    "Subscriber",
]
