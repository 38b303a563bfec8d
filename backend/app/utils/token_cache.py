"""Access-token cache for third-party credentials.

Holds one `{value, expires_at}` pair and refreshes it lazily:

    cache = TokenCache(fetch_token, refresh_margin=60)
    token = await cache.get()

`fetch` is an async callable returning `(value, expires_in_seconds)`.  The
token is refreshed when it is missing or within `refresh_margin` seconds of
expiry.  Concurrent callers share a single refresh (the lock is held while
fetching), so an expired token never triggers a burst of fetches.

Instances are created by whoever owns the credential and passed in; there
is no module-level token.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


class TokenCache:
    def __init__(
        self,
        fetch: TokenFetcher,
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._lock = asyncio.Lock()
        self.value: str | None = None
        self.expires_at: float = 0.0

    def is_fresh(self) -> bool:
        return self.value is not None and self._clock() < self.expires_at - self._refresh_margin

    async def get(self) -> str:
        """Return a valid token, fetching a new one only when needed."""
        if self.is_fresh():
            return self.value

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.is_fresh():
                return self.value

            value, expires_in = await self._fetch()
            self.value = value
            self.expires_at = self._clock() + float(expires_in)
            logger.debug(f"Token refreshed, valid for {expires_in}s")
            return value

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after the remote side answered 401)."""
        self.value = None
        self.expires_at = 0.0
