"""Utilities for integration tests against a running mint."""

import asyncio
import os
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY = 1.0
LOCAL_MINT_URL = "http://localhost:3338"


def get_mint_url() -> str:
    """Mint under test: TEST_MINT_URL, else a local nutshell on port 3338."""
    return os.getenv("TEST_MINT_URL", LOCAL_MINT_URL)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = DEFAULT_RETRY_COUNT,
    delay: float = DEFAULT_RETRY_DELAY,
    **kwargs: Any,
) -> T:
    """Retry an async function with exponential backoff.

    Raises:
        Exception: The last exception if all retries fail
    """
    for attempt in range(max_retries - 1):
        try:
            return await func(*args, **kwargs)
        except Exception:
            await asyncio.sleep(delay * (2**attempt))
    return await func(*args, **kwargs)
