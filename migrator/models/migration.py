from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from migrator.core.db import Base


class Migration(Base):
    __tablename__ = "migrations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    version: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
