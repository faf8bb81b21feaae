"""Unit-of-work helpers: one commit per operation, rollback on any failure"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)

# Failures of the store itself rather than of the statement
TRANSPORT_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


@contextmanager
def storage_guard(db: Session, operation: str) -> Iterator[Session]:
    """
    Surface transport failures in the body as StorageUnavailable.

    Used on its own around read paths and by ``unit_of_work`` around writes.
    """
    try:
        yield db
    except TRANSPORT_ERRORS as e:
        db.rollback()
        logger.error(f"❌ Storage failure during {operation}: {e}")
        raise StorageUnavailable(
            "Storage is temporarily unavailable, please retry",
            details={"operation": operation},
        ) from e


@contextmanager
def unit_of_work(db: Session, operation: str) -> Iterator[Session]:
    """
    Run the body and commit it as a single transaction.

    Transport failures are rolled back and surfaced as StorageUnavailable.
    Every other exception (domain errors, IntegrityError, StaleDataError) is
    rolled back and re-raised for the caller to translate.
    """
    with storage_guard(db, operation):
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
