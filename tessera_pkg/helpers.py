"""Helper functions injected into every expression scope."""

import asyncio
from typing import Any, Dict, Optional

from .url_validator import SafeRequestor

_requestor: Optional[SafeRequestor] = None


def get_requestor() -> SafeRequestor:
    global _requestor
    if _requestor is None:
        _requestor = SafeRequestor()
    return _requestor


def set_requestor(requestor: Optional[SafeRequestor]) -> None:
    """Replace the requestor used by the fetch helpers (None restores the default)."""
    global _requestor
    _requestor = requestor


async def fetch_json(url: str, options: Optional[Dict[str, Any]] = None) -> Any:
    """Fetch a URL and decode the JSON body."""
    response = await asyncio.to_thread(get_requestor().get, url, **(options or {}))
    return response.json()


async def fetch_text(url: str, options: Optional[Dict[str, Any]] = None) -> str:
    """Fetch a URL and return the body as text."""
    response = await asyncio.to_thread(get_requestor().get, url, **(options or {}))
    return response.text


BUILTIN_HELPERS = {
    'fetch_json': fetch_json,
    'fetch_text': fetch_text,
}
