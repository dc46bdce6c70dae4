# Overview: Transaction boundary and row locking for ledger writes.

from __future__ import annotations

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import FairError, PersistenceFailure


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the write transaction before any validation read.

    On SQLite this is BEGIN IMMEDIATE, which serializes writers for the whole
    check-then-append sequence. Other engines rely on lock_for_update() on
    the product rows being debited.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    # pysqlite defers BEGIN; an already-open transaction keeps its lock
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func, *, operation: str):
    """
    Execute one workflow operation as a single all-or-nothing transaction.

    - domain errors roll back and propagate unchanged
    - any SQLAlchemy error rolls back and surfaces as PersistenceFailure
    - anything else rolls back and propagates unchanged
    - nothing is retried; retries belong to the caller
    """
    logger = current_app.logger
    try:
        begin_write()
        result = func()
        db.session.commit()
    except FairError as exc:
        db.session.rollback()
        logger.info("%s rejected: %s %s", operation, exc.code, exc.details)
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("%s failed in storage layer", operation)
        raise PersistenceFailure(
            f"{operation} could not be persisted",
            details={"operation": operation},
        ) from exc
    except Exception:
        # Releases the SQLite write lock and discards partial ORM changes
        db.session.rollback()
        logger.exception("%s aborted by unexpected error", operation)
        raise
    logger.info("%s committed", operation)
    return result
