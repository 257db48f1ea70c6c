"""
Helper functions for the player_sync package.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Set

from logging_config import get_logger

logger = get_logger(__name__)

# Strong references so running tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def create_tracked_task(coro, name: Optional[str] = None) -> asyncio.Task:
    """
    Create a background task with automatic cleanup and error logging.
    Prevents silent failures and ensures tasks complete even if references are lost.
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)

    def cleanup(t):
        _background_tasks.discard(t)
        try:
            t.result()
        except asyncio.CancelledError:
            pass  # Expected during shutdown
        except Exception as e:
            logger.error(f"Background task {t.get_name()} failed: {e}", exc_info=True)

    task.add_done_callback(cleanup)
    return task


async def cancel_tasks(*tasks: Optional[asyncio.Task]) -> None:
    """Cancel tasks and wait for them to finish unwinding."""
    pending = [t for t in tasks if t is not None and not t.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


def format_time(ms: float) -> str:
    """Format milliseconds as m:ss for log lines and the terminal view."""
    seconds = max(0, int(ms // 1000))
    return f"{seconds // 60}:{seconds % 60:02d}"
