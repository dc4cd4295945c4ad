import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from migrator.core.db import get_db
from migrator.core.operator_auth import verify_operator_auth
from migrator.core.settings import settings
from migrator.schemas.migration import MigrationStatusResponse, ReleaseLockResponse, RunMigrationsResponse
from migrator.services.migrations import (
    MigrationApplyError,
    MigrationLockedError,
    MigrationSourceError,
    MigrationStorageError,
    force_unlock,
    get_migration_status,
    run_migrations,
)

router = APIRouter(
    prefix="/migrations",
    tags=["migrations"],
    dependencies=[Depends(verify_operator_auth)],
)
logger = logging.getLogger(__name__)


@router.get("/status", response_model=MigrationStatusResponse)
def migration_status(db: Session = Depends(get_db)) -> MigrationStatusResponse:
    outcome = "unknown"
    try:
        response = get_migration_status(
            db=db,
            migrations_path=settings.migrations_path,
            suffix=settings.migration_suffix,
        )
        outcome = f"ok:pending={len(response.pending)}"
        return response
    except MigrationSourceError as exc:
        outcome = "source_error"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except MigrationStorageError as exc:
        outcome = "storage_error"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    finally:
        logger.info("route_migration_status outcome=%s", outcome)


@router.post(
    "/run",
    response_model=RunMigrationsResponse,
    responses={
        409: {
            "description": "Another service currently holds the migration lock",
            "content": {
                "application/json": {
                    "examples": {
                        "locked": {"value": {"detail": "Migrations are already in progress by svc-a"}},
                    }
                }
            },
        },
        500: {
            "description": "A migration script could not be read or executed",
            "content": {
                "application/json": {
                    "examples": {
                        "apply_failed": {
                            "value": {"detail": "Failed to apply migration 0002_users.up.sql: syntax error"}
                        },
                    }
                }
            },
        },
    },
)
def run_pending_migrations(db: Session = Depends(get_db)) -> RunMigrationsResponse:
    outcome = "unknown"
    try:
        applied = run_migrations(
            db=db,
            service_id=settings.service_id,
            migrations_path=settings.migrations_path,
            suffix=settings.migration_suffix,
            fail_open=settings.fail_open_applied_check,
        )
        outcome = f"ok:applied={len(applied)}"
        return RunMigrationsResponse(service_id=settings.service_id, applied=applied)
    except MigrationLockedError as exc:
        outcome = f"locked:{exc.held_by}"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except MigrationApplyError as exc:
        outcome = f"apply_error:{exc.version}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except MigrationSourceError as exc:
        outcome = "source_error"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except MigrationStorageError as exc:
        outcome = "storage_error"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    finally:
        logger.info("route_run_pending_migrations service_id=%s outcome=%s", settings.service_id, outcome)


@router.post("/lock/release", response_model=ReleaseLockResponse)
def release_migration_lock(db: Session = Depends(get_db)) -> ReleaseLockResponse:
    outcome = "unknown"
    try:
        response = force_unlock(db)
        outcome = f"ok:previous_holder={response.previous_holder}"
        return response
    except MigrationStorageError as exc:
        outcome = "storage_error"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    finally:
        logger.info("route_release_migration_lock outcome=%s", outcome)
