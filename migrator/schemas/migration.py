from datetime import datetime

from pydantic import BaseModel, Field


class LockStatusResponse(BaseModel):
    locked: bool
    locked_at: datetime | None = None
    locked_by: str | None = None


class AppliedMigrationResponse(BaseModel):
    version: str
    applied_at: datetime | None = None


class MigrationStatusResponse(BaseModel):
    applied: list[AppliedMigrationResponse] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    lock: LockStatusResponse


class RunMigrationsResponse(BaseModel):
    service_id: str
    applied: list[str] = Field(default_factory=list)


class ReleaseLockResponse(BaseModel):
    released: bool
    previous_holder: str | None = None
    lock: LockStatusResponse
