"""
Listener lifecycle shared by the control and data channel clients.

Each channel embeds one ListenerLifecycle. It owns the channel's
cancellation token, runs fallible operations under the guarded policy
(cancellation is the quiet shutdown path, anything else is logged and
suppressed) and makes disposal idempotent.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class OperationCancelled(Exception):
    """Raised inside a receive loop once its token has been cancelled"""


class CancellationToken:
    """
    Cooperative cancellation handle owned by exactly one channel.

    Tasks attached to the token are cancelled along with it, which is what
    unblocks a receive loop parked in a socket read.
    """

    def __init__(self):
        self._cancelled = False
        self._released = False
        self._tasks: List[asyncio.Future] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def released(self) -> bool:
        return self._released

    def attach(self, task: asyncio.Future) -> asyncio.Future:
        """Cancel `task` together with this token"""
        if self._cancelled:
            task.cancel()
        else:
            self._tasks.append(task)
        return task

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        for task in self._tasks:
            if not task.done():
                task.cancel()

    def raise_if_cancelled(self):
        if self._cancelled:
            raise OperationCancelled()

    def release(self):
        if self._released:
            raise RuntimeError("Cancellation token released twice")
        self._released = True
        self._tasks.clear()


class GuardOutcome(Enum):
    """Result of a guarded operation"""
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class GuardResult:
    """Outcome of run_guarded / run_guarded_async"""
    outcome: GuardOutcome
    label: str
    error: Optional[BaseException] = None
    value: Any = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is GuardOutcome.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.outcome is GuardOutcome.CANCELLED

    @property
    def failed(self) -> bool:
        return self.outcome is GuardOutcome.FAILED


class ListenerLifecycle:
    """Cancellation token, guarded execution and disposal for one channel"""

    def __init__(self, name: str = "channel"):
        self.name = name
        self._token: Optional[CancellationToken] = None
        self._disposed = False

    @property
    def token(self) -> Optional[CancellationToken]:
        return self._token

    @property
    def is_listening(self) -> bool:
        return self._token is not None and not self._token.cancelled

    @property
    def disposed(self) -> bool:
        return self._disposed

    def start_cancellation(self) -> CancellationToken:
        """Replace the current token (if any) with a fresh one"""
        self.stop_cancellation()
        self._token = CancellationToken()
        return self._token

    def stop_cancellation(self):
        """Cancel and release the current token; no-op when there is none"""
        token = self._token
        if token is None:
            return
        self._token = None
        token.cancel()
        token.release()

    def run_guarded(self, operation: Callable[[], Any], label: str) -> GuardResult:
        """Run `operation`, logging failures instead of raising them"""
        try:
            value = operation()
        except OperationCancelled:
            return GuardResult(GuardOutcome.CANCELLED, label)
        except Exception as e:
            logger.error(f"Error during {label}: {e}")
            return GuardResult(GuardOutcome.FAILED, label, error=e)
        return GuardResult(GuardOutcome.SUCCEEDED, label, value=value)

    async def run_guarded_async(
        self,
        operation: Callable[[], Awaitable[Any]],
        label: str,
        token: Optional[CancellationToken] = None
    ) -> GuardResult:
        """
        Await `operation()`, logging failures instead of raising them.

        A task cancellation counts as CANCELLED only when `token` has been
        cancelled; cancellation coming from the caller is re-raised.
        """
        try:
            value = await operation()
        except OperationCancelled:
            return GuardResult(GuardOutcome.CANCELLED, label)
        except asyncio.CancelledError:
            if token is None or not token.cancelled:
                raise
            return GuardResult(GuardOutcome.CANCELLED, label)
        except Exception as e:
            logger.error(f"Error during {label}: {e}")
            return GuardResult(GuardOutcome.FAILED, label, error=e)
        return GuardResult(GuardOutcome.SUCCEEDED, label, value=value)

    def dispose(self) -> bool:
        """
        Stop cancellation once.

        Returns:
            True on the first call, False on every later call
        """
        if self._disposed:
            return False
        self.stop_cancellation()
        self._disposed = True
        return True
