"""
Cancellation tokens for analysis requests.

A token is attached to every analysis request. When a newer request for the
same requester supersedes it, the registry cancels the old token: in-flight
fetches guarded by the token are aborted and the partial result is dropped.
"""

import asyncio
from typing import Awaitable, Dict, Optional, TypeVar

import structlog

from ..exceptions import AnalysisCancelled

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal for one analysis request."""

    def __init__(self, request_id: str = ""):
        self.request_id = request_id
        self.reason: Optional[str] = None
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info("Analysis cancelled", request_id=self.request_id, reason=reason)

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise AnalysisCancelled(self.reason or "cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Cancelling the guard itself also cancels the awaitable.

        Raises:
            AnalysisCancelled: the token fired before the awaitable finished
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise AnalysisCancelled(self.reason or "cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            raise AnalysisCancelled(self.reason or "cancelled")

        return task.result()


class AnalysisRegistry:
    """
    Tracks the live token per requester.

    Issuing a new token for a requester cancels the previous one.
    """

    def __init__(self):
        self._active: Dict[str, CancellationToken] = {}
        self._counter = 0

    def issue(self, requester: str) -> CancellationToken:
        previous = self._active.get(requester)
        if previous is not None:
            previous.cancel("superseded by a newer analysis request")

        self._counter += 1
        token = CancellationToken(request_id=f"{requester}:{self._counter}")
        self._active[requester] = token
        return token

    def release(self, requester: str, token: CancellationToken):
        """Forget ``token`` if it is still the active one."""
        if self._active.get(requester) is token:
            del self._active[requester]

    def cancel_all(self, reason: str = "shutdown"):
        for token in self._active.values():
            token.cancel(reason)
        self._active.clear()

    def __len__(self) -> int:
        return len(self._active)
