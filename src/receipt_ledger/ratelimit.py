"""Fixed-window request limiting over an injectable counter store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass
class Window:
    """Request count for one identifier until ``reset_at`` (epoch seconds)."""

    count: int
    reset_at: float


class CounterStore(Protocol):
    """Protocol for rate-limit counter backends."""

    def get(self, key: str) -> Window | None: ...

    def put(self, key: str, window: Window) -> None: ...


class InMemoryCounterStore:
    """Process-local counter store.

    Scoped to the limiter that owns it; swap for a shared store when
    several workers must share one budget.
    """

    def __init__(self) -> None:
        self._windows: dict[str, Window] = {}

    def get(self, key: str) -> Window | None:
        return self._windows.get(key)

    def put(self, key: str, window: Window) -> None:
        self._windows[key] = window


class RateLimiter:
    """Allow at most ``max_requests`` per identifier per window."""

    def __init__(
        self,
        store: CounterStore | None = None,
        *,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else InMemoryCounterStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def check(self, identifier: str) -> bool:
        """Count one request; return False when the budget is exhausted."""
        now = self._clock()
        current = self.store.get(identifier)

        if current is None or now > current.reset_at:
            self.store.put(identifier, Window(count=1, reset_at=now + self.window_seconds))
            return True

        if current.count >= self.max_requests:
            logger.warning("Rate limit reached for %s", identifier)
            return False

        self.store.put(identifier, Window(count=current.count + 1, reset_at=current.reset_at))
        return True
