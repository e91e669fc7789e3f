"""
Notification Log — append-only, hash-chained record of every mutation.

Each mutating operation on the governance engine or the treasury vault
appends one Notification after it has completed. The log carries no
behavioural weight; it exists so external observers can follow what
happened, in order. Observers may subscribe to receive each notification
as it is appended (the SQLAlchemy LedgerService uses this to archive).
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from treasury_dao.core.clock import Clock, SystemClock
from treasury_dao.core.schema import GENESIS_HASH, Notification, NotificationType

logger = logging.getLogger(__name__)

Subscriber = Callable[[Notification], None]


class NotificationLog:
    """
    In-process notification log shared by the engine and the vault.

    Usage:
        log = NotificationLog(clock)
        log.emit(NotificationType.DEPOSITED, source=vault.address,
                 contributor="0xabc", amount=5)
        log.verify_chain()  # -> (True, 1, "...")
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock if clock is not None else SystemClock()
        self._entries: list[Notification] = []
        self._subscribers: list[Subscriber] = []

    def emit(
        self, name: NotificationType, /, source: str, **payload: Any
    ) -> Notification:
        """Append a notification and fan it out to subscribers."""
        previous_hash = self._entries[-1].entry_hash if self._entries else GENESIS_HASH
        notification = Notification(
            sequence_number=len(self._entries) + 1,
            name=name,
            source=source,
            payload=payload,
            timestamp=self.clock.now(),
            previous_hash=previous_hash,
        )
        notification.entry_hash = notification.compute_hash()
        self._entries.append(notification)

        logger.debug(
            "Notification #%d %s from %s",
            notification.sequence_number, name.value, source,
        )

        # Subscriber failures are logged, never raised to the emitter
        for subscriber in self._subscribers:
            try:
                subscriber(notification)
            except Exception:
                logger.exception(
                    "Notification subscriber failed on #%d %s",
                    notification.sequence_number, name.value,
                )

        return notification

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def entries(self, name: NotificationType | None = None) -> list[Notification]:
        """All notifications in emission order, optionally filtered by name."""
        if name is None:
            return list(self._entries)
        return [n for n in self._entries if n.name == name]

    def last(self, name: NotificationType | None = None) -> Notification | None:
        matching = self.entries(name)
        return matching[-1] if matching else None

    def __len__(self) -> int:
        return len(self._entries)

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Recompute every hash and check the linkage.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        previous_hash = GENESIS_HASH
        for i, entry in enumerate(self._entries):
            if entry.previous_hash != previous_hash:
                return (
                    False, i,
                    f"Chain break at sequence {entry.sequence_number}: "
                    f"previous_hash does not match prior entry's hash",
                )
            if entry.compute_hash() != entry.entry_hash:
                return (
                    False, i,
                    f"Hash mismatch at sequence {entry.sequence_number}",
                )
            previous_hash = entry.entry_hash

        return (
            True, len(self._entries),
            f"Chain verified: {len(self._entries)} notifications, integrity intact",
        )
