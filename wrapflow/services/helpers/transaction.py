"""
Transaction boundary for template mutations.

Every mutating service operation wraps its writes in ``atomic()`` so the
whole unit of work is committed once or not at all.

Usage:
    with atomic("batch_update_phases"):
        for phase, item in pairs:
            phase.name = item["name"]

A ``SQLAlchemyError`` raised inside the block (including an IntegrityError
from a unique constraint that lost a race against another writer) rolls the
session back and is re-raised as ``TransactionFailureError``. Any other
exception rolls back and propagates unchanged.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from wrapflow.core.exceptions import TransactionFailureError
from wrapflow.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation: str):
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Transaction rolled back operation=%s error=%s", operation, exc)
        raise TransactionFailureError(operation) from exc
    except Exception:
        db.session.rollback()
        raise
