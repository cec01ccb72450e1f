"""Run async service functions from synchronous Celery tasks."""

import asyncio
from typing import Any, Awaitable, Callable

from database.engine import AsyncSessionLocal, db_engine


async def _run(fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
    try:
        async with AsyncSessionLocal() as db:
            return await fn(db, *args, **kwargs)
    finally:
        # Pooled connections are bound to this event loop
        await db_engine.dispose()


def run_with_session(
    fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
) -> Any:
    """Call ``fn(session, *args, **kwargs)`` in a fresh event loop and session."""
    return asyncio.run(_run(fn, *args, **kwargs))


