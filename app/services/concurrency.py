"""Row locking and retry helpers shared by the ledger services."""
import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.exceptions import BusinessLogicError, StorageConflictError

logger = logging.getLogger(__name__)

# Lock, serialization and stale-row failures: the unit of work may be re-run from the start.
# IntegrityError is permanent and goes through integrity_violation() instead.
STORAGE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, PostgreSQL honors it.
    """
    return query.with_for_update()


def storage_conflict(exc, operation: str) -> StorageConflictError:
    """Wrap a store failure so callers see a retryable StorageConflictError."""
    logger.warning(f"Storage conflict during {operation}: {exc}")
    return StorageConflictError(f'Conflicto al {operation}, intente de nuevo')


def integrity_violation(exc, operation: str) -> BusinessLogicError:
    """Wrap a constraint violation; re-running the same unit of work would fail again."""
    logger.error(f"Integrity violation during {operation}: {exc}")
    return BusinessLogicError(f'Error de integridad al {operation}: los datos no son válidos', status_code=409)


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a whole unit of work, retrying on StorageConflictError.

    Each attempt re-runs func from step 1, which is safe because every
    service commits atomically or rolls back.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StorageConflictError:
            if session is not None:
                session.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.info(f"Retrying after storage conflict (attempt {attempt + 1}/{attempts}, {delay:.2f}s)")
            time.sleep(delay)
