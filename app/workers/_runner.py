"""Run an async task body from a synchronous Celery task."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import db

T = TypeVar("T")


def run(coro: Awaitable[T]) -> T:
    """``asyncio.run`` the coroutine, then drop the engine bound to that loop.

    Each Celery invocation gets a fresh event loop, so pooled asyncpg
    connections cannot be carried over to the next one.
    """

    async def _wrapped() -> T:
        try:
            return await coro
        finally:
            await db.dispose_engine()

    return asyncio.run(_wrapped())
