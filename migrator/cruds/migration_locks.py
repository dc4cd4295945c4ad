from datetime import datetime
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from migrator.models.migration_lock import LOCK_ROW_ID, MigrationLock

logger = logging.getLogger(__name__)


def _lock_row_query():
    return (
        select(MigrationLock)
        .where(MigrationLock.id == LOCK_ROW_ID)
        .execution_options(populate_existing=True)
    )


def _insert_if_absent_statement(dialect_name: str):
    values = {"id": LOCK_ROW_ID, "locked": False, "locked_at": None, "locked_by": None}
    if dialect_name == "sqlite":
        return sqlite_insert(MigrationLock).values(**values).on_conflict_do_nothing(index_elements=["id"])
    if dialect_name == "postgresql":
        return postgresql_insert(MigrationLock).values(**values).on_conflict_do_nothing(index_elements=["id"])
    if dialect_name in ("mysql", "mariadb"):
        return insert(MigrationLock).values(**values).prefix_with("IGNORE")
    return None


def ensure_migration_lock_row(db: Session) -> bool:
    dialect_name = db.get_bind().dialect.name
    statement = _insert_if_absent_statement(dialect_name)
    if statement is not None:
        result = db.execute(statement)
        db.commit()
        created = bool(result.rowcount)
        logger.info("crud_ensure_migration_lock_row dialect=%s created=%s", dialect_name, created)
        return created

    if db.execute(_lock_row_query()).scalar_one_or_none() is not None:
        db.rollback()
        logger.info("crud_ensure_migration_lock_row dialect=%s created=%s", dialect_name, False)
        return False

    db.add(MigrationLock(id=LOCK_ROW_ID, locked=False, locked_at=None, locked_by=None))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("crud_ensure_migration_lock_row dialect=%s created=%s reason=concurrent_insert", dialect_name, False)
        return False
    logger.info("crud_ensure_migration_lock_row dialect=%s created=%s", dialect_name, True)
    return True


def get_migration_lock(db: Session) -> MigrationLock | None:
    record = db.execute(_lock_row_query()).scalar_one_or_none()
    logger.info(
        "crud_get_migration_lock found=%s locked=%s locked_by=%s",
        record is not None,
        record.locked if record is not None else None,
        record.locked_by if record is not None else None,
    )
    return record


def try_acquire_migration_lock(db: Session, service_id: str) -> tuple[bool, str | None]:
    """Returns ``(acquired, holder)``; ``holder`` is the identity owning the lock afterwards."""
    now = datetime.utcnow()
    record = db.execute(_lock_row_query().with_for_update()).scalar_one_or_none()

    if record is None:
        db.add(MigrationLock(id=LOCK_ROW_ID, locked=True, locked_at=now, locked_by=service_id))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            current = db.execute(_lock_row_query()).scalar_one_or_none()
            held_by = current.locked_by if current is not None else None
            db.rollback()
            logger.info(
                "crud_try_acquire_migration_lock service_id=%s acquired=%s reason=lost_create_race held_by=%s",
                service_id,
                False,
                held_by,
            )
            return (False, held_by)
        logger.info("crud_try_acquire_migration_lock service_id=%s acquired=%s reason=created", service_id, True)
        return (True, service_id)

    # The locked=false guard makes the flip atomic where FOR UPDATE is a no-op (SQLite).
    claim = (
        update(MigrationLock)
        .where(MigrationLock.id == LOCK_ROW_ID, MigrationLock.locked.is_(False))
        .values(locked=True, locked_at=now, locked_by=service_id)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(claim)
    if result.rowcount != 1:
        db.rollback()
        current = db.execute(_lock_row_query()).scalar_one_or_none()
        held_by = current.locked_by if current is not None else None
        db.rollback()
        logger.info(
            "crud_try_acquire_migration_lock service_id=%s acquired=%s reason=active_lock held_by=%s",
            service_id,
            False,
            held_by,
        )
        return (False, held_by)

    db.commit()
    logger.info("crud_try_acquire_migration_lock service_id=%s acquired=%s reason=unlocked", service_id, True)
    return (True, service_id)


def release_migration_lock(db: Session, service_id: str | None = None) -> str | None:
    """Clear the lock row whoever holds it and return the previous holder.

    ``service_id`` only labels the caller. A release by a non-holder still
    clears the row so an operator can recover from a crashed holder.
    """
    record = db.execute(_lock_row_query()).scalar_one_or_none()
    if record is None:
        db.rollback()
        logger.info("crud_release_migration_lock service_id=%s released=%s reason=missing", service_id, False)
        return None

    previous_holder = record.locked_by
    if service_id is not None and record.locked and previous_holder != service_id:
        logger.warning(
            "crud_release_migration_lock service_id=%s held_by=%s reason=not_holder",
            service_id,
            previous_holder,
        )

    record.locked = False
    record.locked_at = None
    record.locked_by = None
    db.commit()
    logger.info(
        "crud_release_migration_lock service_id=%s released=%s previous_holder=%s",
        service_id,
        True,
        previous_holder,
    )
    return previous_holder
