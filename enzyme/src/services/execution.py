"""Single-writer guard for interactive synthesis actions."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

BUSY_NOTICE = "Please wait for Enzyme to finish."
ERROR_NOTICE_PREFIX = "Enzyme encountered an error: "


class Notifier:
    """Collects user-facing notices and mirrors them to the log."""

    def __init__(self) -> None:
        self.notices: List[str] = []

    def notify(self, message: str) -> None:
        self.notices.append(message)
        logger.info("Notice", extra={"notice": message})


class ExecutionLock:
    """Tracks whether an interactive block is currently running an action."""

    def __init__(self) -> None:
        self.is_executing = False

    def acquire(self) -> bool:
        if self.is_executing:
            return False
        self.is_executing = True
        return True

    def release(self) -> None:
        self.is_executing = False


async def run_locked(
    lock: ExecutionLock,
    action: Callable[[], Awaitable[object]],
    notifier: Optional[Notifier] = None,
) -> bool:
    """
    Run ``action`` while holding ``lock``.

    Returns False without running the action when the lock is already held.
    A failing action produces one error notice; the lock is always released.
    """
    notifier = notifier or Notifier()
    if not lock.acquire():
        notifier.notify(BUSY_NOTICE)
        return False

    try:
        await action()
        return True
    except Exception as exc:
        logger.exception("Synthesis action failed")
        notifier.notify(f"{ERROR_NOTICE_PREFIX}{exc}")
        return False
    finally:
        lock.release()


__all__ = ["ExecutionLock", "Notifier", "run_locked", "BUSY_NOTICE", "ERROR_NOTICE_PREFIX"]
