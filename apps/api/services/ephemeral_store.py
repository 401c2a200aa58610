"""Expiring key-value store shared across requests (rate limits, short-lived flags)."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "asset_organizer:"


class EphemeralStore:
    """
    Redis-backed expiring store with an in-process fallback.

    Every operation goes to Redis when a URL is configured. If Redis is
    unreachable the in-process map is used instead; its expired entries
    are removed by a background sweep started with ``start()``.
    """

    def __init__(self, redis_url: Optional[str] = None, sweep_interval_seconds: int = 300):
        self.redis_url = redis_url
        self.sweep_interval_seconds = max(int(sweep_interval_seconds), 1)
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    # Lifecycle

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = await self.sweep()
            if removed:
                logger.debug("Ephemeral store sweep removed %s entries", removed)

    async def sweep(self) -> int:
        """Drop expired in-process entries and return how many were removed."""
        now = time.time()
        async with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    # Operations

    def _client(self):
        return redis.from_url(self.redis_url, decode_responses=True)

    async def incr(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """
        Increment a counter that expires ``window_seconds`` after first use.

        Returns (count, seconds until reset).
        """
        full_key = KEY_PREFIX + key
        if self.redis_url:
            try:
                client = self._client()
                try:
                    current = await client.incr(full_key)
                    if current == 1:
                        await client.expire(full_key, window_seconds)
                    ttl = await client.ttl(full_key)
                finally:
                    await client.aclose()
                return int(current), max(int(ttl), 0)
            except Exception as exc:
                logger.debug("Redis unavailable for ephemeral store, using local map: %s", exc)

        now = time.time()
        async with self._lock:
            count, expires_at = self._entries.get(full_key, (0, now + window_seconds))
            if now >= expires_at:
                count = 0
                expires_at = now + window_seconds
            count += 1
            self._entries[full_key] = (count, expires_at)
        return count, max(int(expires_at - now), 0)

    async def get(self, key: str) -> Any:
        full_key = KEY_PREFIX + key
        if self.redis_url:
            try:
                client = self._client()
                try:
                    raw = await client.get(full_key)
                finally:
                    await client.aclose()
                return json.loads(raw) if raw is not None else None
            except Exception as exc:
                logger.debug("Redis unavailable for ephemeral store, using local map: %s", exc)

        async with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= time.time():
                del self._entries[full_key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        full_key = KEY_PREFIX + key
        if self.redis_url:
            try:
                client = self._client()
                try:
                    await client.set(full_key, json.dumps(value), ex=ttl_seconds)
                finally:
                    await client.aclose()
                return
            except Exception as exc:
                logger.debug("Redis unavailable for ephemeral store, using local map: %s", exc)

        async with self._lock:
            self._entries[full_key] = (value, time.time() + ttl_seconds)

    async def delete(self, key: str) -> None:
        full_key = KEY_PREFIX + key
        if self.redis_url:
            try:
                client = self._client()
                try:
                    await client.delete(full_key)
                finally:
                    await client.aclose()
            except Exception as exc:
                logger.debug("Redis unavailable for ephemeral store, using local map: %s", exc)

        async with self._lock:
            self._entries.pop(full_key, None)
