"""
Repository pattern for the delivery ledger.

Records which feed items have been seen and which have been delivered to
the channel. The ledger is append-only: rows are inserted once and only the
`delivered` flag is ever updated, and only from false to true.
"""

import logging
import sqlite3
import threading
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import DeliveryRecord, LedgerStats

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Raised when the ledger cannot be read or written."""


class NotFoundError(LedgerError):
    """Raised when an operation targets an identifier with no ledger row."""
    def __init__(self, external_id: str):
        super().__init__(f"No ledger record for item {external_id}")
        self.external_id = external_id


def _row_to_record(row) -> DeliveryRecord:
    return DeliveryRecord(
        external_id=row[0],
        source_identity=row[1],
        delivered=bool(row[2]),
        first_seen=datetime.fromisoformat(row[3])
    )


class DeliveryLedger:
    """Durable map of external item identifiers to a delivered flag.

    Every mutation is committed before the method returns, so a restart
    never has to rebuild state from memory. A process-local lock plus
    single-statement writes make `record_seen` and `mark_delivered`
    atomic check-and-set operations.
    """

    _SELECT = """
        SELECT external_id, source_identity, delivered, first_seen
        FROM delivery_record
        WHERE external_id = ?
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the ledger with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise LedgerError(f"Cannot open ledger at {self.db_path}: {e}") from e

    def initialize_schema(self) -> None:
        """Create the delivery_record table if it doesn't exist."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS delivery_record (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    source_identity TEXT NOT NULL,
                    delivered INTEGER NOT NULL DEFAULT 0,
                    first_seen TEXT NOT NULL
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot initialize ledger schema: {e}") from e
        finally:
            conn.close()

    def lookup(self, external_id: str) -> Optional[DeliveryRecord]:
        """Return the record for `external_id`, or None if never seen."""
        conn = self._connect()
        try:
            row = conn.execute(self._SELECT, (external_id,)).fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Ledger lookup failed for {external_id}: {e}") from e
        finally:
            conn.close()
        return _row_to_record(row) if row else None

    def record_seen(self, external_id: str, source_identity: str) -> DeliveryRecord:
        """Insert an undelivered record unless one already exists.

        Idempotent: a second call with the same identifier returns the
        existing record unchanged, whatever `source_identity` it carries.

        Args:
            external_id: Feed item identifier
            source_identity: Account the item was polled from

        Returns:
            The stored record
        """
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute("""
                    INSERT OR IGNORE INTO delivery_record
                    (external_id, source_identity, delivered, first_seen)
                    VALUES (?, ?, 0, ?)
                """, (external_id, source_identity, datetime.now().isoformat()))
                conn.commit()
                if cursor.rowcount:
                    logger.debug("Recorded new item %s from @%s", external_id, source_identity)
                row = conn.execute(self._SELECT, (external_id,)).fetchone()
            except sqlite3.Error as e:
                conn.rollback()
                raise LedgerError(f"Cannot record item {external_id}: {e}") from e
            finally:
                conn.close()
        return _row_to_record(row)

    def mark_delivered(self, external_id: str) -> None:
        """Flip the delivered flag for an existing record.

        No-op if the record is already delivered.

        Raises:
            NotFoundError: If `external_id` has no record
            LedgerError: If the ledger cannot be written
        """
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    "UPDATE delivery_record SET delivered = 1 "
                    "WHERE external_id = ? AND delivered = 0",
                    (external_id,)
                )
                conn.commit()
                exists = conn.execute(
                    "SELECT 1 FROM delivery_record WHERE external_id = ?",
                    (external_id,)
                ).fetchone()
            except sqlite3.Error as e:
                conn.rollback()
                raise LedgerError(f"Cannot mark item {external_id} delivered: {e}") from e
            finally:
                conn.close()
        if not exists:
            raise NotFoundError(external_id)

    def list_recent(self, limit: int = 20) -> List[DeliveryRecord]:
        """Return the most recently seen records, newest first."""
        conn = self._connect()
        try:
            cursor = conn.execute("""
                SELECT external_id, source_identity, delivered, first_seen
                FROM delivery_record
                ORDER BY id DESC LIMIT ?
            """, (limit,))
            return [_row_to_record(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot list ledger records: {e}") from e
        finally:
            conn.close()

    def stats(self) -> LedgerStats:
        """Count total and delivered records."""
        conn = self._connect()
        try:
            row = conn.execute("""
                SELECT COUNT(*), SUM(delivered) FROM delivery_record
            """).fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot read ledger stats: {e}") from e
        finally:
            conn.close()
        total = row[0] or 0
        delivered = row[1] or 0
        return LedgerStats(total=total, delivered=delivered, pending=total - delivered)
