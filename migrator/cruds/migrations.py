import logging

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from migrator.models.migration import Migration

logger = logging.getLogger(__name__)


def is_migration_applied(db: Session, version: str) -> bool:
    query = select(exists().where(Migration.version == version))
    applied = bool(db.execute(query).scalar())
    logger.info("crud_is_migration_applied version=%s applied=%s", version, applied)
    return applied


def add_migration_record(db: Session, version: str) -> Migration:
    # Commits whatever the session already executed in the same transaction.
    record = Migration(version=version)
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("crud_add_migration_record version=%s applied_at=%s", version, record.applied_at)
    return record


def list_migration_records(db: Session) -> list[Migration]:
    query = select(Migration).order_by(Migration.version)
    records = list(db.execute(query).scalars().all())
    logger.info("crud_list_migration_records count=%s", len(records))
    return records
