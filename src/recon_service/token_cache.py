from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float


class OAuthTokenCache:
    """Get-or-refresh holder for a client-credentials bearer token.

    `fetch_token` returns ``(access_token, expires_in_seconds)`` and may raise.
    Callers that find the token stale all await the same in-flight refresh and
    share its outcome, success or failure; a failed refresh leaves the cache
    empty so the next caller starts a new one.
    """

    def __init__(
        self,
        fetch_token: TokenFetcher,
        safety_margin_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_token = fetch_token
        self.safety_margin_seconds = safety_margin_seconds
        self._clock = clock
        self._token: AccessToken | None = None
        self._inflight: asyncio.Future[str] | None = None

    def _is_fresh(self, token: AccessToken | None) -> bool:
        return token is not None and token.expires_at > self._clock() + self.safety_margin_seconds

    async def _refresh(self) -> str:
        try:
            value, expires_in = await self._fetch_token()
            self._token = AccessToken(value=value, expires_at=self._clock() + float(expires_in))
            logger.info("Marketplace access token refreshed, expires in %ss", expires_in)
            return value
        finally:
            self._inflight = None

    async def get_token(self) -> str:
        token = self._token
        if token is not None and self._is_fresh(token):
            return token.value
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
        # Shielded so one cancelled caller does not abort the refresh for the rest.
        return await asyncio.shield(self._inflight)

    def invalidate(self) -> None:
        self._token = None
