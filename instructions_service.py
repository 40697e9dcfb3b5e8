"""
Looks up the behavioral instructions the assistant should follow on a call.
"""
import logging
from typing import Optional

import httpx

from config import DEFAULT_INSTRUCTIONS, INSTRUCTIONS_TABLE
from persistence_service import SupabaseClient

logger = logging.getLogger(__name__)


class InstructionsService:
    """Fetches instructions from Supabase, falling back to a fixed default."""

    def __init__(
        self,
        supabase: SupabaseClient,
        table: str = INSTRUCTIONS_TABLE,
        default: str = DEFAULT_INSTRUCTIONS,
    ):
        self.supabase = supabase
        self.table = table
        self.default = default

    async def fetch_instructions(self) -> Optional[str]:
        """Return stored instructions, or None when none are available."""
        if not self.table or not self.supabase.configured:
            return None
        try:
            rows = await self.supabase.select(
                self.table, {"select": "instructions", "order": "created_at.desc", "limit": "1"}
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not fetch instructions from %s: %s", self.table, e)
            return None
        if rows and isinstance(rows, list) and isinstance(rows[0], dict):
            return rows[0].get("instructions") or None
        return None

    async def get_instructions(self) -> str:
        return await self.fetch_instructions() or self.default
