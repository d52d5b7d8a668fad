"""
Fail-fast join over a fixed set of concurrent upstream calls.
"""

import asyncio
from typing import Any, Awaitable, List


async def gather_fail_fast(*aws: Awaitable[Any]) -> List[Any]:
    """Run ``aws`` concurrently and return their results in order.

    The first failure cancels every task still pending and is re-raised;
    no partial result list is ever returned. When several tasks have failed
    by the time the join wakes up, the one that completed earliest wins.
    """
    if not aws:
        return []

    tasks = [asyncio.ensure_future(aw) for aw in aws]
    completed: List[asyncio.Future] = []
    for task in tasks:
        task.add_done_callback(completed.append)

    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    failed = [task for task in completed if not task.cancelled() and task.exception() is not None]
    if failed:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        raise failed[0].exception()

    return [task.result() for task in tasks]
