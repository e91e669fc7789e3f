"""
Notification Archive Service — persists and audits the notification log.

The in-process NotificationLog is the source of truth while the system
runs; this service mirrors it into a database so the history survives the
process and can be audited independently:

- record()        — insert one notification (the only write operation)
- attach()        — subscribe to a NotificationLog and record everything
- verify_chain()  — recompute every hash from the stored rows
"""

from __future__ import annotations

import logging
from datetime import timezone

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from treasury_dao.core.schema import GENESIS_HASH, Notification, NotificationType
from treasury_dao.ledger.models import Base, NotificationDB
from treasury_dao.ledger.notifications import NotificationLog

logger = logging.getLogger(__name__)


class ArchiveIntegrityError(Exception):
    """Raised when a notification does not extend the archived chain."""
    pass


class LedgerService:
    """
    Database-backed archive of notifications.

    Usage:
        service = LedgerService("sqlite:///ledger.db")
        service.initialize()
        service.attach(system.notifications)
        ...
        is_valid, count, message = service.verify_chain()
    """

    def __init__(self, database_url: str) -> None:
        """
        Initialize the archive service.

        Args:
            database_url: SQLAlchemy connection string.
        """
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the archive tables if they do not exist."""
        Base.metadata.create_all(self.engine)

    def attach(self, log: NotificationLog) -> None:
        """
        Archive everything already in `log` and everything emitted later.

        Raises:
            ArchiveIntegrityError: If the archive already holds entries that
                are not a prefix of `log`.
        """
        archived = self.get_entry_count()
        local = log.entries()
        if archived:
            last = self.get_by_sequence(archived)
            if len(local) < archived or last is None or (
                local[archived - 1].entry_hash != last.entry_hash
            ):
                raise ArchiveIntegrityError(
                    f"Archive holds {archived} notifications from a different log"
                )
        for notification in local[archived:]:
            self.record(notification)
        log.subscribe(self.record)

    def record(self, notification: Notification) -> NotificationDB:
        """
        Insert one notification.

        Raises:
            ArchiveIntegrityError: If the notification does not directly
                follow the last archived one.
        """
        with self.SessionLocal() as session:
            last = session.execute(
                select(NotificationDB)
                .order_by(NotificationDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            expected_seq = last.sequence_number + 1 if last else 1
            expected_prev = last.entry_hash if last else GENESIS_HASH
            if (
                notification.sequence_number != expected_seq
                or notification.previous_hash != expected_prev
            ):
                raise ArchiveIntegrityError(
                    f"Notification #{notification.sequence_number} does not extend "
                    f"the archive (expected #{expected_seq})"
                )

            row = NotificationDB(
                sequence_number=notification.sequence_number,
                previous_hash=notification.previous_hash,
                entry_hash=notification.entry_hash,
                timestamp=notification.timestamp,
                name=notification.name.value,
                source=notification.source,
                payload=notification.payload,
            )
            session.add(row)
            session.commit()
            session.refresh(row)

            logger.info(
                "Notification archived: seq=%d name=%s hash=%s",
                row.sequence_number, row.name, row.entry_hash[:16],
            )
            return row

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the archived chain.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            rows = session.execute(
                select(NotificationDB).order_by(NotificationDB.sequence_number.asc())
            ).scalars().all()

            if not rows:
                return True, 0, "Archive is empty"

            previous_hash = GENESIS_HASH
            for i, row in enumerate(rows):
                if row.sequence_number != i + 1:
                    return (
                        False, i,
                        f"Gap in archive: found sequence {row.sequence_number}, "
                        f"expected {i + 1}",
                    )
                if row.previous_hash != previous_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {row.sequence_number}: "
                        f"previous_hash does not match prior entry's hash",
                    )

                expected_hash = self._to_notification(row).compute_hash()
                if row.entry_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {row.sequence_number}: "
                        f"stored={row.entry_hash[:16]}... "
                        f"computed={expected_hash[:16]}...",
                    )
                previous_hash = row.entry_hash

            return (
                True, len(rows),
                f"Chain verified: {len(rows)} notifications, integrity intact",
            )

    def get_by_sequence(self, sequence_number: int) -> NotificationDB | None:
        with self.SessionLocal() as session:
            return session.get(NotificationDB, sequence_number)

    def get_entries_by_name(
        self,
        name: NotificationType | str,
        limit: int = 100,
    ) -> list[NotificationDB]:
        """Archived notifications of one kind, newest first."""
        value = name.value if isinstance(name, NotificationType) else name
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(NotificationDB)
                    .where(NotificationDB.name == value)
                    .order_by(NotificationDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_latest_entries(self, limit: int = 50) -> list[NotificationDB]:
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(NotificationDB)
                    .order_by(NotificationDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def count_by_name(self) -> dict[str, int]:
        """Number of archived notifications per notification name."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(NotificationDB.name, func.count())
                .group_by(NotificationDB.name)
                .order_by(NotificationDB.name)
            ).all()
            return {name: count for name, count in rows}

    def get_entry_count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(NotificationDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _to_notification(row: NotificationDB) -> Notification:
        timestamp = row.timestamp
        # SQLite drops tzinfo on the way back; stored values are UTC.
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Notification(
            sequence_number=row.sequence_number,
            name=NotificationType(row.name),
            source=row.source,
            payload=row.payload,
            timestamp=timestamp,
            previous_hash=row.previous_hash,
            entry_hash=row.entry_hash,
        )
