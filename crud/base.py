import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from errors import BackendError

logger = logging.getLogger(__name__)


@contextmanager
def store_call(session: Session, action: str) -> Iterator[None]:
    """
    Run one unit of store work.

    Any SQLAlchemy failure is rolled back, logged and re-raised as
    ``BackendError`` so callers deal with a single failure type.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Store call failed: %s", action)
        raise BackendError(f"Failed to {action}.") from exc
