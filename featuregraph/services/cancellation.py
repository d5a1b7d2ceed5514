"""Cooperative cancellation for long-running analysis steps."""

import threading
import time
from typing import Optional

from featuregraph.errors import AnalysisCancelledError, AnalysisTimeoutError


class CancellationToken:
    """Cancellation flag with an optional deadline.

    Long loops call ``check()`` between units of work. ``check`` raises
    once ``cancel()`` was called from another thread or once the time
    budget has elapsed.
    """

    def __init__(self, workspace_id: str, budget_seconds: Optional[float] = None):
        self.workspace_id = workspace_id
        self.budget_seconds = budget_seconds
        self._event = threading.Event()
        self._started = time.monotonic()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    @property
    def expired(self) -> bool:
        return self.budget_seconds is not None and self.elapsed > self.budget_seconds

    def check(self) -> None:
        """Raise if the run was cancelled or ran out of time."""
        if self._event.is_set():
            raise AnalysisCancelledError(self.workspace_id)
        if self.expired:
            raise AnalysisTimeoutError(self.workspace_id, self.budget_seconds)
