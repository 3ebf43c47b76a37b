from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import LedgerError, PersistenceError
from app.core.extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(operation: str, **context: object) -> Iterator[None]:
    """Commit the block on success, roll back on any error.

    Store failures are re-raised as ``PersistenceError`` carrying the
    operation name and its scope (owner, record, date).
    """
    try:
        yield
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Fallo de persistencia en %s (%s)", operation, context)
        raise PersistenceError(operation, context, exc) from exc
