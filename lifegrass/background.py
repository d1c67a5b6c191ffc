"""Supervised fire-and-forget tasks and blocking-call offload.

Background pushes and other best-effort jobs go through :func:`spawn` so a
failure is always logged (and optionally reported to a hook) instead of
vanishing with an un-awaited task, and so pending work can be awaited on
shutdown with :func:`drain`.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Optional, Set

logger = logging.getLogger(__name__)

# Strong references so tasks are not garbage collected before finishing.
_background_tasks: Set[asyncio.Task[Any]] = set()


def spawn(coro: Awaitable[Any], *, name: Optional[str] = None,
          on_error: Optional[Callable[[BaseException], None]] = None,
          registry: Optional[Set[asyncio.Task[Any]]] = None) -> asyncio.Task[Any]:
    """Run ``coro`` in the background and log its failure.

    Args:
        coro: Awaitable to schedule on the running loop.
        name: Task name used in log lines.
        on_error: Called with the exception if the task raises.
        registry: Extra set the task is tracked in until it finishes, so an
            owner can await just its own tasks.
    """
    task = asyncio.create_task(coro, name=name)  # type: ignore[arg-type]
    _background_tasks.add(task)
    if registry is not None:
        registry.add(task)

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        if registry is not None:
            registry.discard(t)
        if t.cancelled():
            logger.debug("Background task %s cancelled", name or t)
            return
        exc = t.exception()
        if exc is None:
            return
        logger.error("Background task %s failed", name or t, exc_info=exc)
        if on_error:
            try:
                on_error(exc)
            except Exception:  # noqa: BLE001
                logger.exception("Error in on_error callback for task %s", name or t)

    task.add_done_callback(_finished)
    return task


async def drain(tasks: Optional[Iterable[asyncio.Task[Any]]] = None) -> None:
    """Wait for ``tasks`` (default: every supervised task) to finish.

    Failures were already reported by :func:`spawn`, so they are not raised here.
    """
    pending = list(_background_tasks if tasks is None else tasks)
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


async def run_sync(func: Callable[..., Any], *args: Any, loop: Optional[asyncio.AbstractEventLoop] = None,
                   executor: Optional[Executor] = None, **kwargs: Any) -> Any:
    """Execute blocking code in the default executor and await the result."""
    event_loop = loop or asyncio.get_running_loop()
    bound = partial(func, *args, **kwargs)
    return await event_loop.run_in_executor(executor, bound)


__all__ = ["spawn", "drain", "run_sync"]
