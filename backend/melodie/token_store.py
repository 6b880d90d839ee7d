"""Premium token storage.

A token maps to one captured submission snapshot and is redeemable once.
Redemption flows claim the token, load it, deliver, and only then delete it,
so a failed email leaves the token in place for a retry. Expired tokens
simply vanish: ``load`` reports them exactly like tokens that never existed.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Protocol

from redis.asyncio import Redis

logger = logging.getLogger("melodie.tokens")

KEY_PREFIX = "premium:"
LOCK_PREFIX = "premium-lock:"

Submission = dict[str, Any]


def token_preview(token: str) -> str:
    return f"{token[:6]}..." if token else "<empty>"


class PremiumTokenStore(Protocol):
    async def save(self, token: str, submission: Submission) -> None: ...

    async def load(self, token: str) -> Submission | None: ...

    async def delete(self, token: str) -> None: ...

    async def redeem(self, token: str) -> Submission | None:
        """Atomic load + delete for single-shot consumers.

        Delivery flows pair ``claim`` with ``load`` and ``delete`` instead, so
        a failed email leaves the token redeemable.
        """
        ...

    async def claim(self, token: str) -> bool:
        """Mark the token as being redeemed. False when another redemption holds it."""
        ...

    async def release(self, token: str) -> None: ...

    async def close(self) -> None: ...


class InMemoryTokenStore:
    """Process-local store. Entries and claims expire lazily on access."""

    def __init__(
        self, ttl_seconds: int, *, claim_ttl_seconds: int = 300, clock=time.monotonic
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.claim_ttl_seconds = claim_ttl_seconds
        self._clock = clock
        self._items: dict[str, tuple[float, str]] = {}
        self._claimed: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _get_live(self, token: str) -> str | None:
        entry = self._items.get(token)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at <= self._clock():
            del self._items[token]
            return None
        return raw

    async def save(self, token: str, submission: Submission) -> None:
        raw = json.dumps(submission, ensure_ascii=False)
        async with self._lock:
            self._items[token] = (self._clock() + self.ttl_seconds, raw)

    async def load(self, token: str) -> Submission | None:
        async with self._lock:
            raw = self._get_live(token)
        return json.loads(raw) if raw is not None else None

    async def delete(self, token: str) -> None:
        async with self._lock:
            self._items.pop(token, None)

    async def redeem(self, token: str) -> Submission | None:
        async with self._lock:
            raw = self._get_live(token)
            if raw is not None:
                del self._items[token]
        return json.loads(raw) if raw is not None else None

    async def claim(self, token: str) -> bool:
        async with self._lock:
            now = self._clock()
            if self._claimed.get(token, now) > now:
                return False
            self._claimed[token] = now + self.claim_ttl_seconds
            return True

    async def release(self, token: str) -> None:
        async with self._lock:
            self._claimed.pop(token, None)

    async def close(self) -> None:
        return None


class RedisTokenStore:
    def __init__(self, redis: Redis, ttl_seconds: int, *, claim_ttl_seconds: int = 300) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds
        self.claim_ttl_seconds = claim_ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int, *, claim_ttl_seconds: int = 300) -> "RedisTokenStore":
        return cls(
            Redis.from_url(url, decode_responses=True),
            ttl_seconds,
            claim_ttl_seconds=claim_ttl_seconds,
        )

    async def save(self, token: str, submission: Submission) -> None:
        payload = json.dumps(submission, ensure_ascii=False)
        await self._redis.setex(f"{KEY_PREFIX}{token}", self.ttl_seconds, payload)

    async def load(self, token: str) -> Submission | None:
        raw = await self._redis.get(f"{KEY_PREFIX}{token}")
        return _decode(raw, token)

    async def delete(self, token: str) -> None:
        await self._redis.delete(f"{KEY_PREFIX}{token}")

    async def redeem(self, token: str) -> Submission | None:
        raw = await self._redis.getdel(f"{KEY_PREFIX}{token}")
        return _decode(raw, token)

    async def claim(self, token: str) -> bool:
        acquired = await self._redis.set(
            f"{LOCK_PREFIX}{token}", "1", nx=True, ex=self.claim_ttl_seconds
        )
        return bool(acquired)

    async def release(self, token: str) -> None:
        await self._redis.delete(f"{LOCK_PREFIX}{token}")

    async def close(self) -> None:
        await self._redis.aclose()


def _decode(raw: str | None, token: str) -> Submission | None:
    if raw is None:
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("Corrupt premium submission | token=%s", token_preview(token))
        return None
    return payload if isinstance(payload, dict) else None


def build_token_store(
    redis_url: str | None, ttl_seconds: int, *, claim_ttl_seconds: int = 300
) -> InMemoryTokenStore | RedisTokenStore:
    if redis_url:
        logger.info("Premium token store: redis")
        return RedisTokenStore.from_url(redis_url, ttl_seconds, claim_ttl_seconds=claim_ttl_seconds)
    logger.warning("REDIS_URL not set, premium tokens kept in process memory")
    return InMemoryTokenStore(ttl_seconds, claim_ttl_seconds=claim_ttl_seconds)
