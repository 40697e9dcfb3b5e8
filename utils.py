"""
Utility functions for the realtime call bridge.
"""
import json
import logging
import re
from typing import Any, Dict

logger = logging.getLogger(__name__)


def normalize_event_to_dict(event: Any) -> Dict[str, Any]:
    """Convert various event formats to a dictionary."""
    if isinstance(event, dict):
        return event
    if isinstance(event, (str, bytes, bytearray)):
        try:
            return json.loads(event if isinstance(event, str) else event.decode())
        except (ValueError, UnicodeDecodeError):
            return {"type": "unknown", "raw": repr(event)}

    # openai SDK events are pydantic models
    model_dump = getattr(event, "model_dump", None)
    if callable(model_dump):
        return model_dump(exclude_none=True)

    data_attr = getattr(event, "data", None)
    if isinstance(data_attr, dict):
        return data_attr

    return {"type": "unknown", "raw": repr(event)}


def normalize_domain(raw_domain: str) -> str:
    """Strip any scheme and trailing slashes: 'https://x.io/' -> 'x.io'."""
    domain = re.sub(r"(^\w+:|^)//", "", raw_domain.strip())
    return domain.rstrip("/")


async def safe_task(coro, description: str = "background task"):
    """Run a coroutine, logging instead of raising if it fails."""
    try:
        await coro
    except Exception:
        logger.exception("%s failed", description)
