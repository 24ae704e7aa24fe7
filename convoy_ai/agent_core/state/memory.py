"""In-process key/value client.

Used directly by the ``memory`` provider and as the fallback behind every
networked provider. Expiry is checked on every read so ttl behaves the same
whichever provider ends up serving a call.
"""

from __future__ import annotations

import time
from typing import Dict, Optional, Tuple


class InMemoryKeyValueClient:
    provider = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def aclose(self) -> None:
        self._data.clear()
