"""
Persistence service: writes completed-response events to Supabase.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from config import (
    PERSISTENCE_TIMEOUT,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    TRANSCRIPTS_TABLE,
    UPDATES_TABLE,
)

logger = logging.getLogger(__name__)


def extract_item_id(event: Dict[str, Any]) -> Optional[str]:
    """Content-item id of a response event, wherever the event carries it."""
    if event.get("item_id"):
        return event["item_id"]
    for item in (event.get("response") or {}).get("output") or []:
        if isinstance(item, dict) and item.get("id"):
            return item["id"]
    return None


class SupabaseClient:
    """Minimal PostgREST client for the Supabase tables the bridge uses."""

    def __init__(
        self,
        url: Optional[str] = SUPABASE_URL,
        service_key: Optional[str] = SUPABASE_SERVICE_ROLE_KEY,
        timeout: float = PERSISTENCE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/") if url else None
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key or "",
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def insert(self, table: str, row: Dict[str, Any]) -> httpx.Response:
        headers = {**self._headers(), "Prefer": "return=minimal"}
        async with self._client() as client:
            r = await client.post(f"{self.url}/rest/v1/{table}", headers=headers, json=[row])
            r.raise_for_status()
            return r

    async def select(self, table: str, params: Dict[str, str]) -> Any:
        async with self._client() as client:
            r = await client.get(f"{self.url}/rest/v1/{table}", headers=self._headers(), params=params)
            r.raise_for_status()
            return r.json()


class PersistenceService:
    """
    Best-effort sink for transcript and dashboard records.
    Never raises: failures are logged and dropped.
    """

    def __init__(
        self,
        supabase: SupabaseClient,
        transcripts_table: str = TRANSCRIPTS_TABLE,
        updates_table: str = UPDATES_TABLE,
    ):
        self.supabase = supabase
        self.transcripts_table = transcripts_table
        self.updates_table = updates_table

    async def store_transcript(self, event: Dict[str, Any]) -> None:
        """Save the full response event, keyed by content item."""
        row = {"item_id": extract_item_id(event), "content": json.dumps(event)}
        await self._insert(self.transcripts_table, row)

    async def post_realtime_update(self, event: Dict[str, Any]) -> None:
        """Insert into the updates table a client dashboard listens on."""
        row = {"event_type": event.get("type"), "payload": json.dumps(event)}
        await self._insert(self.updates_table, row)

    async def _insert(self, table: str, row: Dict[str, Any]) -> None:
        if not self.supabase.configured:
            logger.debug("Supabase not configured; skipping insert into %s", table)
            return
        try:
            await self.supabase.insert(table, row)
        except httpx.HTTPStatusError as e:
            logger.error("Supabase insert into %s failed: HTTP %s %s", table, e.response.status_code, e.response.text)
        except httpx.HTTPError as e:
            logger.error("Supabase insert into %s failed: %s", table, e)
