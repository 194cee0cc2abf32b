"""
Installation Verifier - Checks whether a store's storefront serves the
current integration snippet.

The storefront HTML is fetched and matched against the attribute markers
the snippet sets. Matching is done on the raw text, which covers both the
loader form (setAttribute calls) and the rendered form (name="value").
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_popup.config import settings
from newsletter_popup.models import Store
from newsletter_popup.services.script_synthesizer import (
    ATTR_GENERATED_AT,
    ATTR_INTEGRATION_TYPE,
    ATTR_POPUP_CONFIG,
    ATTR_SCRIPT_VERSION,
    ATTR_STORE_DOMAIN,
    ATTR_STORE_ID,
    INTEGRATION_TYPE,
    RUNTIME_SCRIPT_NAME,
    RUNTIME_SCRIPT_PATH,
    mint_script_version,
    normalize_base_url,
)

logger = logging.getLogger(__name__)

NO_URLS_MESSAGE = "No store URLs configured"
UNREACHABLE_MESSAGE = "Could not verify installation - site may not be accessible"


class ValidationLevel(str, Enum):
    """Installation state, ordered from worst to best."""

    MISSING = "missing"
    INCOMPLETE = "incomplete"
    OUTDATED = "outdated"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [
    ValidationLevel.MISSING,
    ValidationLevel.INCOMPLETE,
    ValidationLevel.OUTDATED,
    ValidationLevel.COMPLETE,
]

LEVEL_MESSAGES = {
    ValidationLevel.COMPLETE: "Script is properly installed and up to date",
    ValidationLevel.OUTDATED: (
        "An older version of the script is installed. "
        "Replace it with the latest integration script."
    ),
    ValidationLevel.INCOMPLETE: "Script found but required attributes are missing or do not match",
    ValidationLevel.MISSING: "Script not found on site",
}

CHECK_NAMES = (
    "has_script",
    "has_store_id",
    "has_store_domain",
    "has_popup_config",
    "has_integration_type",
    "has_script_version",
    "has_generated_at",
    "has_correct_src",
)


@dataclass(frozen=True)
class ExpectedInstallation:
    """Values the installed snippet must carry to count as current."""

    domain: str
    version: str
    timestamp: str
    base_url: str


@dataclass
class UrlCheckResult:
    """Outcome of checking one candidate URL."""

    url: str
    level: Optional[ValidationLevel] = None
    message: str = ""
    checks: Dict[str, bool] = field(default_factory=dict)
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "validationLevel": self.level.value if self.level else None,
            "message": self.message,
            "checks": self.checks,
            "statusCode": self.status_code,
            "error": self.error,
        }


@dataclass
class VerificationReport:
    """Aggregate outcome across all candidate URLs."""

    installed: bool
    is_outdated: bool
    level: ValidationLevel
    message: str
    checked_urls: List[str] = field(default_factory=list)
    details: List[UrlCheckResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "installed": self.installed,
            "isOutdated": self.is_outdated,
            "validationLevel": self.level.value,
            "message": self.message,
            "checkedUrls": self.checked_urls,
            "details": [detail.to_dict() for detail in self.details],
        }


def extract_attribute_values(html: str, name: str) -> List[str]:
    """
    Collect every value assigned to an attribute in the page text.

    Handles both setAttribute('name', 'value') calls and name="value"
    attributes, with either quote style.
    """
    escaped = re.escape(name)
    patterns = (
        rf"setAttribute\(\s*(['\"]){escaped}\1\s*,\s*(['\"])(.*?)\2\s*\)",
        rf"(?<![\w-]){escaped}\s*=\s*(['\"])(.*?)\1",
    )
    values = []
    for match in re.finditer(patterns[0], html):
        values.append(match.group(3))
    for match in re.finditer(patterns[1], html):
        values.append(match.group(2))
    return values


def run_installation_checks(html: str, store_id: str, expected: ExpectedInstallation) -> Dict[str, bool]:
    """
    Run the marker checks against fetched HTML.

    Args:
        html: Page source
        store_id: Store whose snippet should be present
        expected: Current domain, version, timestamp and base URL

    Returns:
        Map of check name to result, plus has_any_version_marker
    """
    versions = extract_attribute_values(html, ATTR_SCRIPT_VERSION)
    generated = extract_attribute_values(html, ATTR_GENERATED_AT)
    expected_src = f"{expected.base_url}{RUNTIME_SCRIPT_PATH}"

    return {
        "has_script": RUNTIME_SCRIPT_NAME in html,
        "has_store_id": store_id in extract_attribute_values(html, ATTR_STORE_ID),
        "has_store_domain": expected.domain in extract_attribute_values(html, ATTR_STORE_DOMAIN),
        "has_popup_config": bool(extract_attribute_values(html, ATTR_POPUP_CONFIG)),
        "has_integration_type": INTEGRATION_TYPE in extract_attribute_values(html, ATTR_INTEGRATION_TYPE),
        "has_script_version": expected.version in versions,
        "has_generated_at": expected.timestamp in generated,
        "has_correct_src": expected_src in html,
        "has_any_version_marker": bool(versions or generated),
    }


def classify(checks: Dict[str, bool]) -> ValidationLevel:
    """Map check results to a validation level."""
    if not checks.get("has_script"):
        return ValidationLevel.MISSING

    if all(checks.get(name) for name in CHECK_NAMES):
        return ValidationLevel.COMPLETE

    markers_ok = all(
        checks.get(name)
        for name in (
            "has_store_id",
            "has_store_domain",
            "has_popup_config",
            "has_integration_type",
            "has_correct_src",
        )
    )
    version_matches = checks.get("has_script_version") and checks.get("has_generated_at")
    if markers_ok and not version_matches and checks.get("has_any_version_marker"):
        return ValidationLevel.OUTDATED

    return ValidationLevel.INCOMPLETE


class InstallationVerifier:
    """Verifies the integration snippet on a store's live pages."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _expected_for(self, store: Store, base_url: str) -> ExpectedInstallation:
        if store.has_active_script:
            version, timestamp = store.active_script_version, store.active_script_timestamp
        else:
            # Stores that never generated a script get throwaway values
            version, timestamp = mint_script_version(store.id)
        return ExpectedInstallation(
            domain=store.target_domain,
            version=version,
            timestamp=timestamp,
            base_url=normalize_base_url(base_url),
        )

    async def _check_url(
        self,
        client: httpx.AsyncClient,
        url: str,
        store: Store,
        expected: ExpectedInstallation,
    ) -> UrlCheckResult:
        result = UrlCheckResult(url=url)
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Installation check request to {url} failed: {e}")
            result.error = str(e) or e.__class__.__name__
            result.message = UNREACHABLE_MESSAGE
            return result

        result.status_code = response.status_code
        if not 200 <= response.status_code < 300:
            logger.warning(f"Installation check for {url} returned HTTP {response.status_code}")
            result.error = f"HTTP {response.status_code}"
            result.message = UNREACHABLE_MESSAGE
            return result

        result.checks = run_installation_checks(response.text, store.id, expected)
        result.level = classify(result.checks)
        result.message = LEVEL_MESSAGES[result.level]
        return result

    async def verify(self, store: Store, base_url: str) -> VerificationReport:
        """
        Check the store's candidate URLs and record whether the current
        snippet is installed.

        Args:
            store: Store record
            base_url: Public base URL of this service

        Returns:
            Aggregate report with per-URL details
        """
        urls = store.verification_urls
        if not urls:
            store.mark_verified(False)
            await self.db.commit()
            return VerificationReport(
                installed=False,
                is_outdated=False,
                level=ValidationLevel.MISSING,
                message=NO_URLS_MESSAGE,
            )

        expected = self._expected_for(store, base_url)
        details: List[UrlCheckResult] = []
        checked_urls: List[str] = []

        async with httpx.AsyncClient(
            timeout=settings.verification_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": settings.verification_user_agent},
        ) as client:
            for url in urls:
                checked_urls.append(url)
                result = await self._check_url(client, url, store, expected)
                details.append(result)
                if result.level == ValidationLevel.COMPLETE:
                    break

        evaluated = [d for d in details if d.level is not None]
        if evaluated:
            best = max(evaluated, key=lambda d: d.level.rank)
            level, message = best.level, best.message
        else:
            level, message = ValidationLevel.MISSING, UNREACHABLE_MESSAGE

        installed = level == ValidationLevel.COMPLETE
        store.mark_verified(installed)
        await self.db.commit()

        logger.info(f"Installation check for store {store.id}: {level.value} ({', '.join(checked_urls)})")

        return VerificationReport(
            installed=installed,
            is_outdated=level == ValidationLevel.OUTDATED,
            level=level,
            message=message,
            checked_urls=checked_urls,
            details=details,
        )
