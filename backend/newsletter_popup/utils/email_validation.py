"""
Email validation rules shared by the subscribe endpoint and the popup runtime.
"""

import re
from typing import Iterable, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Disposable inbox providers. Subdomains are blocked too.
TEMPORARY_EMAIL_DOMAINS = frozenset(
    [
        "10minutemail.com",
        "burnermail.io",
        "discard.email",
        "dispostable.com",
        "emailondeck.com",
        "fakeinbox.com",
        "getairmail.com",
        "getnada.com",
        "guerrillamail.com",
        "guerrillamail.net",
        "mailcatch.com",
        "maildrop.cc",
        "mailinator.com",
        "mailnesia.com",
        "mintemail.com",
        "mohmal.com",
        "sharklasers.com",
        "spamgourmet.com",
        "temp-mail.org",
        "tempail.com",
        "tempmail.com",
        "tempr.email",
        "throwawaymail.com",
        "trashmail.com",
        "yopmail.com",
    ]
)

INVALID_EMAIL_MESSAGE = "Please enter a valid email address."
TEMPORARY_EMAIL_MESSAGE = (
    "Temporary email addresses are not allowed. Please use a permanent email address."
)
COMPANY_EMAIL_MESSAGE = "Please use your company email address."
APPROVED_DOMAIN_MESSAGE = "Please use an approved company email domain."


def email_domain(email: str) -> str:
    """Get the lowercase domain part of an email address."""
    return email.rsplit("@", 1)[-1].strip().lower()


def is_valid_email_format(email: Optional[str]) -> bool:
    """Check basic local@domain.tld shape."""
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def is_temporary_email(email: str) -> bool:
    """Check if the address belongs to a disposable inbox provider."""
    domain = email_domain(email)
    return any(domain == blocked or domain.endswith(f".{blocked}") for blocked in TEMPORARY_EMAIL_DOMAINS)


def _lowered(domains: Optional[Iterable[str]]) -> list[str]:
    return [d.strip().lower() for d in (domains or []) if d and d.strip()]


def check_email(email: Optional[str], rules: Optional[dict] = None) -> Optional[str]:
    """
    Validate an address against the format, disposable-domain and
    company-domain rules.

    Args:
        email: Address submitted through the popup
        rules: Popup email validation settings
            (companyEmailsOnly, allowedDomains, blockedDomains)

    Returns:
        None when the address is acceptable, otherwise the user-facing message
    """
    if not is_valid_email_format(email):
        return INVALID_EMAIL_MESSAGE

    if is_temporary_email(email):
        return TEMPORARY_EMAIL_MESSAGE

    rules = rules or {}
    if rules.get("companyEmailsOnly"):
        domain = email_domain(email)
        if domain in _lowered(rules.get("blockedDomains")):
            return COMPANY_EMAIL_MESSAGE
        allowed = _lowered(rules.get("allowedDomains"))
        if allowed and domain not in allowed:
            return APPROVED_DOMAIN_MESSAGE

    return None
