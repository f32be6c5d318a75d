"""Cooperative cancellation shared by the loop, tools and pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_CANCEL = "user-cancel"
TIMEOUT = "timeout"


class OperationCancelled(RuntimeError):
    """Raised when a guarded operation loses the race against cancellation."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Operation cancelled: {reason}")
        self.reason = reason


class CancellationToken:
    """Set-once cancellation signal with an attached reason.

    Child tokens created with `linked()` are cancelled together with their
    parent, which lets the orchestrator derive one token that fires on either
    external cancellation or its own wall-clock timer.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = USER_CANCEL) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)

    def linked(self) -> "CancellationToken":
        child = CancellationToken()
        if self.cancelled:
            child.cancel(self.reason or USER_CANCEL)
        else:
            self._children.append(child)
        return child

    def detach(self, child: "CancellationToken") -> None:
        if child in self._children:
            self._children.remove(child)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or USER_CANCEL)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the token fires first."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self.reason or USER_CANCEL)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("Abandoned operation failed after cancellation", exc_info=True)
        raise OperationCancelled(self.reason or USER_CANCEL)
