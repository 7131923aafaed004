"""Timeout guard for store round-trips.

Learn: A slow database must not look like a missing row. Every store call
the identity core makes goes through bounded(); a timeout surfaces as
TransientStoreFailure (retryable, 503) rather than "not found".
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from gatehouse.config import settings
from gatehouse.errors import TransientStoreFailure

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    try:
        return await asyncio.wait_for(
            awaitable, timeout if timeout is not None else settings.store_timeout_seconds
        )
    except asyncio.TimeoutError as e:
        raise TransientStoreFailure() from e
