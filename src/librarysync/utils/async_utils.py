"""Small asyncio helpers shared by the remote client and the mirror queue."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any


def wrap_sleep(sleep: Callable[[float], Any] | None) -> Callable[[float], Awaitable[None]]:
    """Accept a sync or async sleep callable and always return an async one."""
    if sleep is None:
        return asyncio.sleep

    async def _async_sleep(seconds: float) -> None:
        result = sleep(seconds)
        if inspect.isawaitable(result):
            await result

    return _async_sleep
