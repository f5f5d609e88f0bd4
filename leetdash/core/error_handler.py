"""Global error handling for detached asyncio work."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, MutableSet, Optional

logger = logging.getLogger(__name__)


def setup_global_exception_handler() -> None:
    """Set up global exception handler for uncaught asyncio exceptions."""

    def handle_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exception = context.get("exception")
        message = context.get("message", "Unhandled exception in async task")

        if exception:
            logger.error(
                "Asyncio exception handler caught: %s",
                message,
                exc_info=exception,
            )
        else:
            logger.error(
                "Asyncio exception handler caught: %s (context: %s)",
                message,
                context,
            )

    try:
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(handle_exception)
        logger.info("Global asyncio exception handler installed")
    except RuntimeError:
        logger.debug("No running loop to install exception handler yet")


def safe_background_task(
    task_name: str,
    task_coro: Coroutine[Any, Any, Any],
    *,
    registry: Optional[MutableSet[asyncio.Task]] = None,
) -> asyncio.Task:
    """
    Spawn a detached task whose failures end at the task boundary.

    Exceptions are logged and swallowed so nobody has to await the task.
    When ``registry`` is given, the task is kept there until it finishes
    (the event loop only holds weak references to running tasks).
    """

    async def wrapped() -> Any:
        try:
            return await task_coro
        except asyncio.CancelledError:
            logger.info("Background task '%s' cancelled", task_name)
            return None
        except Exception:
            logger.exception("Background task '%s' failed with unhandled exception", task_name)
            return None

    task = asyncio.create_task(wrapped(), name=task_name)
    if registry is not None:
        registry.add(task)
        task.add_done_callback(registry.discard)
    return task


__all__ = ["setup_global_exception_handler", "safe_background_task"]
