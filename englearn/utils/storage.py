"""
Transient-failure handling for storage calls
"""
import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from englearn.config import settings
from englearn.exceptions import ConflictError, ServiceUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


def run_with_storage_retry(db: Session, unit_of_work: Callable[[], T], description: str) -> T:
    """
    Run a complete unit of work, retrying it after a transient storage error.

    The whole callable is re-run (reads included) so a retried commit never
    replays a rolled-back transaction.

    Raises:
        ServiceUnavailableError: if the retries are exhausted
    """
    retries = settings.STORAGE_RETRY_ATTEMPTS

    for attempt in range(retries + 1):
        try:
            return unit_of_work()
        except TRANSIENT_ERRORS as e:
            db.rollback()
            if attempt < retries:
                logger.warning(f"Transient storage error during {description}, retrying: {str(e)}")
                continue
            logger.error(f"Storage unavailable during {description}: {str(e)}")
            raise ServiceUnavailableError(
                f"Storage is temporarily unavailable ({description})"
            ) from e


def run_with_conflict_retry(db: Session, unit_of_work: Callable[[], T], description: str) -> T:
    """
    Run a unit of work that writes version-guarded rows, re-running it from a
    fresh read whenever a concurrent writer bumped a version first.

    Raises:
        ConflictError: if every try lost the race
        ServiceUnavailableError: if storage stays unavailable
    """
    max_retries = settings.PROGRESS_UPDATE_MAX_RETRIES

    for attempt in range(1, max_retries + 1):
        try:
            return run_with_storage_retry(db, unit_of_work, description)
        except StaleDataError:
            db.rollback()
            logger.warning(
                f"Concurrent update during {description} (attempt {attempt}/{max_retries}), retrying"
            )

    logger.error(f"Gave up on {description} after {max_retries} conflicts")
    raise ConflictError("Progress was modified concurrently, please retry")
