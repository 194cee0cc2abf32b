"""Middleware and request guards for the newsletter popup service."""

from newsletter_popup.middleware.auth import require_auth, require_permission
from newsletter_popup.middleware.rate_limit import RateLimitMiddleware

__all__ = ["require_auth", "require_permission", "RateLimitMiddleware"]
