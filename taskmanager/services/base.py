import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..errors import StorageFailure

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(session: Session, action: str):
    """Roll back and re-raise SQLAlchemy errors as StorageFailure.

    Nothing is retried; the caller learns the operation did not complete.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Storage error while %s", action)
        raise StorageFailure(f"The store failed while {action}; the operation was not completed") from exc
