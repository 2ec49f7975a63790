"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection
- Per-accommodation serialization of calendar operations
- Bounded retry on lock/serialization conflicts
"""

import logging
import threading
import zlib
from contextlib import contextmanager
from typing import Callable, Tuple, TypeVar, Type

from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError

from ..errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# SQLSTATE codes that mean "try the transaction again"
RETRYABLE_PG_CODES = {"40001", "40P01", "55P03"}
RETRYABLE_MESSAGES = ("could not serialize", "deadlock", "could not obtain lock", "database is locked")

# Fixed pool of locks; accommodations hashing to the same stripe share one
LOCAL_LOCK_STRIPES = 64
_local_locks: Tuple[threading.RLock, ...] = tuple(threading.RLock() for _ in range(LOCAL_LOCK_STRIPES))


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except Exception:
        return False


def _local_lock(key: str) -> threading.RLock:
    return _local_locks[zlib.crc32(key.encode("utf-8")) % LOCAL_LOCK_STRIPES]


@contextmanager
def accommodation_lock(db: Session, accommodation_id: str):
    """
    Serialize calendar operations on one accommodation.

    PostgreSQL: transaction-scoped advisory lock, released by the commit or
    rollback that ends the current transaction.
    Other dialects: process-local re-entrant lock held for the block, so the
    caller must commit inside it.
    """
    key = f"accommodation:{accommodation_id}"

    if is_postgres(db):
        db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        yield
        return

    with _local_lock(key):
        yield


def is_lock_conflict(error: OperationalError) -> bool:
    """True when the error is a lock timeout, deadlock or serialization failure."""
    pgcode = getattr(getattr(error, "orig", None), "pgcode", None)
    if pgcode in RETRYABLE_PG_CODES:
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def run_with_conflict_retry(
    db: Session,
    operation: Callable[[], T],
    max_attempts: int,
    description: str = "operation"
) -> T:
    """
    Run `operation`, retrying on lock conflicts up to `max_attempts` times.

    Raises:
        ConflictError: if every attempt hit a conflict
        OperationalError: for any non-conflict database error
    """
    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except OperationalError as e:
            db.rollback()
            if not is_lock_conflict(e):
                raise
            last_error = e
            logger.warning(f"Conflict on {description} (attempt {attempt}/{max_attempts}): {e}")

    raise ConflictError(
        f"Concurrent modification during {description}, gave up after {max_attempts} attempts",
        details={"last_error": str(last_error)[:200]}
    )


def locked_transaction(
    db: Session,
    accommodation_id: str,
    work: Callable[[], T],
    notifier=None,
    max_attempts: int = 3,
    description: str = "calendar operation"
) -> T:
    """
    Run `work` as one all-or-nothing transaction under the accommodation lock.

    Buffered change events are discarded on rollback and flushed only after
    a successful commit.
    """
    def attempt() -> T:
        if notifier is not None:
            notifier.discard()
        try:
            with accommodation_lock(db, accommodation_id):
                # Rows read before the lock was taken may be stale
                db.expire_all()
                result = work()
                db.commit()
            return result
        except Exception:
            db.rollback()
            if notifier is not None:
                notifier.discard()
            raise

    result = run_with_conflict_retry(db, attempt, max_attempts, description)

    if notifier is not None:
        notifier.flush()
    return result


def get_pending_with_skip_locked(
    db: Session,
    model: Type[T],
    filter_condition,
    order_by=None,
    limit: int = 50
) -> list:
    """
    Get pending records with skip_locked to prevent worker race conditions.

    Useful for background workers processing queues.
    """
    query = db.query(model).filter(filter_condition)

    if order_by is not None:
        query = query.order_by(order_by)

    # Only apply skip_locked on PostgreSQL
    if is_postgres(db):
        query = query.with_for_update(skip_locked=True)

    return query.limit(limit).all()
