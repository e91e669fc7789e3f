"""Non-reentrancy latch for the vault's fund-moving entry points."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from treasury_dao.core.errors import ReentrantCall


class ReentrancyGuard:
    """
    A single in-progress flag shared by every guarded entry point.

    Usage:
        with self._guard.enter("disburse"):
            ...  # bookkeeping, then the external transfer

    Entering while any guarded call is already in progress raises
    ReentrantCall. The flag is always released on exit, error or not.
    """

    def __init__(self) -> None:
        self._entered: str | None = None

    @property
    def entered(self) -> bool:
        return self._entered is not None

    def require_not_entered(self, scope: str) -> None:
        """Reject `scope` while a guarded call is in progress, without entering."""
        if self._entered is not None:
            raise ReentrantCall(
                f"Call to {scope} while {self._entered} is in progress"
            )

    @contextmanager
    def enter(self, scope: str) -> Iterator[None]:
        if self._entered is not None:
            raise ReentrantCall(
                f"Re-entrant call to {scope} while {self._entered} is in progress"
            )
        self._entered = scope
        try:
            yield
        finally:
            self._entered = None
