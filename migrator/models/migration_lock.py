from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from migrator.core.db import Base

LOCK_ROW_ID = 1


class MigrationLock(Base):
    __tablename__ = "migrations_lock"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    locked: Mapped[bool] = mapped_column(Boolean, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
