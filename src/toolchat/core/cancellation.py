"""Pass-through cancellation for the two turn suspension points.

A turn may be given an `asyncio.Event`; when it is set while a fragment pull or a
tool call is pending, the pending awaitable is cancelled and TurnCancelledError
is raised instead.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import TurnCancelledError

T = TypeVar("T")


async def await_or_cancel(aw: Awaitable[T], cancel: asyncio.Event | None, *, where: str) -> T:
    if cancel is None:
        return await aw

    if cancel.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise TurnCancelledError(where)

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    # Let the aborted awaitable unwind before reporting.
    await asyncio.wait({task})
    raise TurnCancelledError(where)
