"""Cooperative cancellation for plan execution."""

from typing import Optional


class CancellationToken:
    """Signals that execution should stop at the next step boundary.

    An in-flight completion call is never interrupted; the executor checks
    ``cancelled`` only before starting each step.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled!r})"
