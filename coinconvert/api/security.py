from __future__ import annotations

import time
from typing import Mapping, Optional

from jose import JWTError, jwt
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

NONCE_ALGORITHM = "HS256"


class RateLimiter:
    """Fixed-window request counter per client key.

    A window opens on the first request from a key and lasts
    ``window_seconds``; once it expires the counter starts over.
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 3600) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._limiter = FixedWindowRateLimiter(MemoryStorage())

    def hit(self, key: str) -> bool:
        """Count a request for ``key``; False when the cap is already reached."""
        return self._limiter.hit(self._item, "prices", key)


def client_ip(headers: Mapping[str, str], remote_addr: Optional[str]) -> str:
    """Best guess at the caller's address, preferring proxy headers."""
    shared = (headers.get("client-ip") or "").strip()
    if shared:
        return shared
    forwarded = headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return remote_addr or "0.0.0.0"


class NonceSigner:
    """Stateless request tokens: HS256 JWTs bound to one action with an ``exp`` claim."""

    def __init__(self, secret: str, lifetime_seconds: int = 86400) -> None:
        self.secret = secret
        self.lifetime_seconds = lifetime_seconds

    def issue(self, action: str) -> str:
        now = int(time.time())
        payload = {"action": action, "iat": now, "exp": now + self.lifetime_seconds}
        return jwt.encode(payload, self.secret, algorithm=NONCE_ALGORITHM)

    def verify(self, token: Optional[str], action: str) -> bool:
        if not token:
            return False
        try:
            claims = jwt.decode(token, self.secret, algorithms=[NONCE_ALGORITHM])
        except JWTError:
            return False
        return claims.get("action") == action
