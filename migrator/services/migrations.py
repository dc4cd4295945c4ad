import logging
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from migrator.core.db import init_db
from migrator.cruds.migration_locks import (
    ensure_migration_lock_row,
    get_migration_lock,
    release_migration_lock,
    try_acquire_migration_lock,
)
from migrator.cruds.migrations import add_migration_record, is_migration_applied, list_migration_records
from migrator.schemas.migration import (
    AppliedMigrationResponse,
    LockStatusResponse,
    MigrationStatusResponse,
    ReleaseLockResponse,
)
from migrator.utils.migration_files import list_migration_files, read_migration_script, split_sqlite_script

logger = logging.getLogger(__name__)

DEFAULT_MIGRATION_SUFFIX = ".up.sql"


class MigrationError(Exception):
    pass


class MigrationSourceError(MigrationError):
    pass


class MigrationStorageError(MigrationError):
    pass


class MigrationLockedError(MigrationError):
    def __init__(self, held_by: str | None) -> None:
        self.held_by = held_by
        super().__init__(f"Migrations are already in progress by {held_by or 'an unknown service'}")


class MigrationApplyError(MigrationError):
    def __init__(self, version: str, reason: str) -> None:
        self.version = version
        self.reason = reason
        super().__init__(f"Failed to apply migration {version}: {reason}")


def bootstrap_migration_schema(db: Session) -> None:
    try:
        init_db(bind=db.get_bind())
        ensure_migration_lock_row(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationStorageError(f"Unable to bootstrap migration tables: {exc}") from exc
    logger.info("service_bootstrap_migration_schema completed=%s", True)


def acquire_migration_lock(db: Session, service_id: str) -> None:
    try:
        acquired, held_by = try_acquire_migration_lock(db=db, service_id=service_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationStorageError(f"Unable to acquire migration lock: {exc}") from exc
    logger.info("service_acquire_migration_lock service_id=%s acquired=%s held_by=%s", service_id, acquired, held_by)
    if not acquired:
        raise MigrationLockedError(held_by=held_by)


def release_lock(db: Session, service_id: str | None = None) -> str | None:
    try:
        return release_migration_lock(db=db, service_id=service_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationStorageError(f"Unable to release migration lock: {exc}") from exc


def get_lock_status(db: Session) -> LockStatusResponse:
    try:
        record = get_migration_lock(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationStorageError(f"Unable to read migration lock: {exc}") from exc
    if record is None:
        return LockStatusResponse(locked=False)
    return LockStatusResponse(locked=record.locked, locked_at=record.locked_at, locked_by=record.locked_by)


def force_unlock(db: Session) -> ReleaseLockResponse:
    """Operator recovery for a lock left behind by a crashed holder."""
    previous_holder = release_lock(db=db)
    logger.warning("service_force_unlock previous_holder=%s", previous_holder)
    return ReleaseLockResponse(
        released=previous_holder is not None,
        previous_holder=previous_holder,
        lock=get_lock_status(db),
    )


def list_pending_migrations(migrations_path: str | Path, suffix: str = DEFAULT_MIGRATION_SUFFIX) -> list[str]:
    try:
        return list_migration_files(migrations_path, suffix)
    except OSError as exc:
        raise MigrationSourceError(f"Unable to list migrations in {migrations_path}: {exc}") from exc


def migration_is_applied(db: Session, version: str, fail_open: bool = False) -> bool:
    try:
        return is_migration_applied(db=db, version=version)
    except SQLAlchemyError as exc:
        db.rollback()
        if fail_open:
            logger.exception("service_migration_is_applied version=%s outcome=read_failed_assume_pending", version)
            return False
        raise MigrationStorageError(f"Unable to check migration {version}: {exc}") from exc


def execute_migration_script(db: Session, script: str) -> None:
    if not script.strip():
        return
    connection = db.connection()
    # sqlite3 runs a single statement per call.
    if connection.dialect.name == "sqlite":
        statements = split_sqlite_script(script)
    else:
        statements = [script]
    for statement in statements:
        connection.exec_driver_sql(statement)


def apply_migration(db: Session, migrations_path: str | Path, version: str) -> None:
    try:
        script = read_migration_script(migrations_path, version)
    except (OSError, UnicodeDecodeError) as exc:
        raise MigrationSourceError(f"Unable to read migration {version}: {exc}") from exc

    try:
        execute_migration_script(db, script)
        add_migration_record(db=db, version=version)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("service_apply_migration version=%s outcome=failed", version)
        raise MigrationApplyError(version=version, reason=str(exc)) from exc
    logger.info("service_apply_migration version=%s outcome=applied", version)


def run_migrations(
    db: Session,
    service_id: str,
    migrations_path: str | Path,
    suffix: str = DEFAULT_MIGRATION_SUFFIX,
    fail_open: bool = False,
) -> list[str]:
    """Apply every pending migration under the migration lock.

    Stops at the first failing migration and re-raises its error; the lock is
    released on every exit once it was acquired. Returns the versions applied
    by this call, in order.
    """
    bootstrap_migration_schema(db)
    acquire_migration_lock(db, service_id=service_id)

    applied: list[str] = []
    outcome = "unknown"
    try:
        for version in list_pending_migrations(migrations_path, suffix):
            if migration_is_applied(db, version=version, fail_open=fail_open):
                continue
            logger.info("service_run_migrations applying version=%s service_id=%s", version, service_id)
            apply_migration(db, migrations_path=migrations_path, version=version)
            applied.append(version)
        outcome = "ok"
        return applied
    except MigrationError as exc:
        outcome = type(exc).__name__
        raise
    finally:
        try:
            release_lock(db, service_id=service_id)
        except MigrationStorageError:
            logger.exception("service_run_migrations_release_failed service_id=%s outcome=%s", service_id, outcome)
            # Surfaces only when the run itself succeeded.
            if outcome == "ok":
                raise
        logger.info(
            "service_run_migrations_completed service_id=%s outcome=%s applied=%s",
            service_id,
            outcome,
            len(applied),
        )


def get_migration_status(
    db: Session,
    migrations_path: str | Path,
    suffix: str = DEFAULT_MIGRATION_SUFFIX,
) -> MigrationStatusResponse:
    try:
        records = list_migration_records(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationStorageError(f"Unable to read migration ledger: {exc}") from exc

    applied_versions = {record.version for record in records}
    pending = [name for name in list_pending_migrations(migrations_path, suffix) if name not in applied_versions]
    logger.info("service_get_migration_status applied=%s pending=%s", len(records), len(pending))
    return MigrationStatusResponse(
        applied=[AppliedMigrationResponse(version=record.version, applied_at=record.applied_at) for record in records],
        pending=pending,
        lock=get_lock_status(db),
    )


__all__ = [
    "MigrationApplyError",
    "MigrationError",
    "MigrationLockedError",
    "MigrationSourceError",
    "MigrationStorageError",
    "acquire_migration_lock",
    "apply_migration",
    "bootstrap_migration_schema",
    "force_unlock",
    "get_lock_status",
    "get_migration_status",
    "list_pending_migrations",
    "migration_is_applied",
    "release_lock",
    "run_migrations",
]
