"""
Idempotency-Key handling for retried POSTs.

The key is reserved and the response stored inside the caller's
transaction, so a request that rolls back leaves nothing behind and its
retry runs again. Keys are scoped per user and live for IDEMPOTENCY_TTL.
"""
import hashlib
import json
from datetime import timedelta
from typing import Any, Awaitable, Callable

from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.clock import as_utc, utcnow
from marketmate.core.errors import ConflictError
from marketmate.models.idempotency import IdempotencyKey
from marketmate.services.auth import Actor

MAX_KEY_LENGTH = 200
IDEMPOTENCY_TTL = timedelta(hours=24)


def request_fingerprint(path: str, body: dict[str, Any]) -> str:
    canonical = json.dumps([path, body], sort_keys=True, separators=(",", ":"), default=str)
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


async def optional_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    if idempotency_key is not None and not 0 < len(idempotency_key) <= MAX_KEY_LENGTH:
        raise HTTPException(status_code=400, detail=f"Idempotency-Key must be 1-{MAX_KEY_LENGTH} characters")
    return idempotency_key


async def run_idempotent(
    db: AsyncSession,
    actor: Actor,
    key: str | None,
    *,
    path: str,
    body: dict[str, Any],
    work: Callable[[], Awaitable[dict]],
) -> dict:
    """
    Run ``work`` once per (user, key) and return its JSON response.

    A replay of the same request returns the stored response; the same
    key on a different request is a ConflictError. Without a key ``work``
    just runs.
    """
    if not key:
        return await work()

    fingerprint = request_fingerprint(path, body)
    stmt = select(IdempotencyKey).where(IdempotencyKey.user_id == actor.user_id, IdempotencyKey.key == key)
    row = (await db.execute(stmt)).scalar_one_or_none()

    if row is not None and as_utc(row.created_at) < utcnow() - IDEMPOTENCY_TTL:
        await db.delete(row)
        await db.flush()
        row = None

    if row is not None:
        if row.request_hash != fingerprint:
            raise ConflictError("Idempotency-Key was already used for a different request")
        return row.response

    row = IdempotencyKey(user_id=actor.user_id, key=key, request_hash=fingerprint, response={})
    db.add(row)
    try:
        # unique (user_id, key): a concurrent first use loses here
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("A request with this Idempotency-Key is already in progress") from e

    response = await work()
    row.response = response
    await db.flush()
    return response
