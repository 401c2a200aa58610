"""Rate limiting dependency backed by the app's ephemeral store."""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request

from services.ephemeral_store import EphemeralStore


def get_ephemeral_store(request: Request) -> EphemeralStore:
    return request.app.state.ephemeral_store


def _client_identifier(request: Request) -> str:
    # The socket peer wins; X-Forwarded-For is client-controlled.
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


async def enforce_quota(
    store: EphemeralStore,
    key: str,
    limit: int,
    window_seconds: int,
    detail: str,
) -> None:
    """Consume one unit of quota for ``key`` or raise 429 with a retry hint."""
    count, retry_after = await store.incr(f"rate:{key}", window_seconds)
    if count > limit:
        raise HTTPException(
            status_code=429,
            detail={"message": detail, "retryAfter": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[Request], None]:
    """Return a FastAPI dependency that enforces per-client request quotas."""

    async def _dependency(request: Request):
        if getattr(request.app.state, "disable_rate_limits", False):
            return
        await enforce_quota(
            get_ephemeral_store(request),
            f"{prefix}:{_client_identifier(request)}",
            limit,
            window_seconds,
            f"Rate limit exceeded for {prefix}. Try again later.",
        )

    return _dependency
