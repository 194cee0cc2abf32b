"""
Script Version Tracker - Decides when a store gets a new script version.

A version is only minted on the first request or when regeneration is
forced. Every other request re-renders the stored pair, so the snippet an
owner installed keeps matching what the installation check expects.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_popup.models import Store
from newsletter_popup.services.script_synthesizer import (
    GeneratedScript,
    generate_script,
    mint_script_version,
)

logger = logging.getLogger(__name__)


class ScriptVersionTracker:
    """Resolves the active integration script for a store."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(
        self,
        store: Store,
        base_url: str,
        force_regenerate: bool = False,
        now: Optional[datetime] = None,
    ) -> GeneratedScript:
        """
        Get the integration script for a store.

        Args:
            store: Store record
            base_url: Public base URL of this service
            force_regenerate: Mint a new version even if one is stored
            now: Instant used when minting (defaults to the current time)

        Returns:
            Rendered script with the version it was rendered from
        """
        if force_regenerate or not store.has_active_script:
            version, timestamp = mint_script_version(store.id, now=now)
            # Render before persisting so invalid inputs never store a pair
            script = generate_script(store.id, store.target_domain, base_url, version, timestamp)

            store.set_active_script(version, timestamp)
            await self.db.commit()

            logger.info(
                f"Minted script version {version} for store {store.id}"
                f"{' (forced)' if force_regenerate else ''}"
            )
            return script

        return generate_script(
            store.id,
            store.target_domain,
            base_url,
            store.active_script_version,
            store.active_script_timestamp,
        )
