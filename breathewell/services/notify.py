# breathewell/services/notify.py
import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

logger = logging.getLogger(__name__)

# strong refs so fire-and-forget tasks aren't garbage collected mid-flight
_background: Set[asyncio.Task] = set()


def _log_failure(task: asyncio.Task) -> None:
    _background.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


def run_bg(coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task:
    """
    Fire-and-forget a coroutine on the running loop.
    Failures are logged, never raised to the caller.
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background.add(task)
    task.add_done_callback(_log_failure)
    return task


def emit_to_sid_bg(sid: str, event: str, payload: Any) -> None:
    """
    Fire-and-forget Socket.IO emit so state pushes never block a screen update.
    """
    from .socket_manager import sio

    run_bg(sio.emit(event, payload, to=sid), name=f"emit:{event}")
