import logging

from fastapi import Depends, FastAPI
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse

from migrator.api.routes import router as migrations_router
from migrator.core.db import SessionLocal, init_db
from migrator.core.operator_auth import verify_operator_auth
from migrator.core.settings import settings
from migrator.services.migrations import MigrationError, MigrationLockedError, run_migrations

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Schema Migrator",
    version="0.1.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

app.include_router(migrations_router)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("startup_completed env=%s database_url=%s", settings.app_env, settings.database_url)
    if not settings.run_migrations_on_startup:
        logger.info("startup_migrations_skipped reason=disabled")
        return

    outcome = "ok"
    applied: list[str] = []
    with SessionLocal() as db:
        try:
            applied = run_migrations(
                db=db,
                service_id=settings.service_id,
                migrations_path=settings.migrations_path,
                suffix=settings.migration_suffix,
                fail_open=settings.fail_open_applied_check,
            )
        except MigrationLockedError as exc:
            # Another fleet member is migrating; keep serving.
            outcome = f"locked:{exc.held_by}"
        except MigrationError:
            outcome = "failed"
            logger.exception("startup_migrations_failed service_id=%s", settings.service_id)
            raise
        finally:
            logger.info(
                "startup_migrations_completed service_id=%s outcome=%s applied=%s",
                settings.service_id,
                outcome,
                applied,
            )


@app.get("/docs", dependencies=[Depends(verify_operator_auth)], response_class=HTMLResponse)
def docs() -> HTMLResponse:
    response = get_swagger_ui_html(
        openapi_url="/openapi.json",
        title=f"{app.title} - Swagger UI",
    )
    logger.info("docs_requested")
    return response


@app.get("/openapi.json", dependencies=[Depends(verify_operator_auth)])
def openapi_schema() -> dict:
    schema = app.openapi()
    logger.info("openapi_schema_requested")
    return schema


@app.get("/health")
def health() -> dict[str, str]:
    payload = {"status": "ok", "env": settings.app_env}
    logger.info("health_requested env=%s", settings.app_env)
    return payload
