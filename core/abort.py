# core/abort.py
"""Cooperative cancellation shared by every pipeline stage.

An :class:`AbortToken` is a thin wrapper over :class:`asyncio.Event`. Checking it
never blocks. Stage calls are routed through :meth:`AbortCoordinator.guard`,
which checks the token before the call, bounds the call with a deadline and
checks again once the call resolves. A stage already in flight is allowed to
finish its current unit of work; the pipeline simply refuses to start the next
one.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from core.errors import PipelineCancelled, StageTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class AbortToken:
    """Single cancellation primitive observable by all stages of one run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: weakref.WeakSet[AbortToken] = weakref.WeakSet()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str = "Operation was aborted") -> None:
        """Fire the token. Subsequent calls keep the first reason."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Abort requested.", reason=reason)
        for child in list(self._children):
            child.abort(reason)

    def check(self, context: str | None = None) -> None:
        """Raise :class:`PipelineCancelled` if the token has fired."""
        if not self._event.is_set():
            return
        message = (
            f"Operation aborted: {context}" if context else "Operation was aborted"
        )
        raise PipelineCancelled(
            message, details={"context": context, "abort_reason": self._reason}
        )

    async def wait(self) -> None:
        await self._event.wait()

    @classmethod
    def linked(cls, *parents: AbortToken | None) -> AbortToken:
        """Return a token that fires when any of ``parents`` fires.

        Parents hold their children weakly, so a long-lived parent does not
        keep finished runs alive.
        """
        token = cls()
        for parent in parents:
            if parent is None:
                continue
            if parent.aborted:
                token.abort(parent.reason or "Operation was aborted")
                return token
            parent._children.add(token)
        return token


class AbortCoordinator:
    """Thread one :class:`AbortToken` through every stage invocation."""

    def __init__(self, token: AbortToken | None = None) -> None:
        self.token = token or AbortToken()

    @property
    def aborted(self) -> bool:
        return self.token.aborted

    def check(self, context: str | None = None) -> None:
        self.token.check(context)

    async def guard(
        self,
        stage: str,
        call: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Run ``call`` as one stage unit with cancellation checks around it.

        Raises:
            PipelineCancelled: The token fired before or during the call.
            StageTimeoutError: The call exceeded ``timeout`` seconds.
        """
        self.token.check(f"before {stage}")
        try:
            if timeout is None:
                result = await call()
            else:
                result = await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self.token.check(f"during {stage}")
            raise StageTimeoutError(
                f"Stage '{stage}' timed out after {timeout:.1f}s",
                stage=stage,
                details={"timeout_seconds": timeout},
            ) from exc
        except PipelineCancelled:
            raise
        except Exception:
            # A stage that failed because the run was cancelled is a
            # cancellation, not a stage failure.
            self.token.check(f"during {stage}")
            raise
        self.token.check(f"after {stage}")
        return result


def describe_exception(exc: BaseException) -> dict[str, Any]:
    """Compact, JSON-friendly description of an exception for audit records."""
    return {"type": type(exc).__name__, "message": str(exc)}
