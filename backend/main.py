"""SheetIntake — FastAPI application entry point.

On startup the data table is synchronized with the template (a failure here
stops the app) and a watcher re-syncs it whenever the template file changes.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from backend.api import health, reports, templates, uploads
from backend.api.deps import error_response
from backend.core import storage
from backend.core.config import settings
from backend.core.errors import SheetIntakeError
from backend.core.sanitize import sanitize_column_name
from backend.core.schema_sync import SchemaReconciler
from backend.core.template_store import TemplateStore
from backend.core.template_watcher import TemplateWatcher, resync_on_change
from backend.core.validation_cache import ValidationCache

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to the database, sync the schema and watch the template."""
    logger.info("Starting SheetIntake backend...")

    for directory in (settings.reports_dir, settings.uploads_dir):
        settings.resolve_path(directory).mkdir(parents=True, exist_ok=True)

    engine = storage.init_engine()
    table_storage = storage.SqlStorage(engine, settings.data_table)

    template_path = settings.resolve_path(settings.template_path)
    store = TemplateStore(
        template_path,
        reserved_names={
            sanitize_column_name(settings.error_column),
            sanitize_column_name(settings.row_number_column),
        },
    )
    cache = ValidationCache(template_path)
    reconciler = SchemaReconciler(store, table_storage)

    try:
        reconciler.sync()
    except SheetIntakeError as e:
        logger.error(f"Failed to synchronize database schema: {e.message}")
        storage.close_engine()
        raise
    logger.info("Database schema synchronized with template")

    watcher = TemplateWatcher(
        store,
        on_change=resync_on_change(reconciler, cache),
        interval=settings.template_poll_interval,
    )
    watcher.start()

    app.state.template_store = store
    app.state.validation_cache = cache
    app.state.storage = table_storage
    app.state.reconciler = reconciler
    app.state.template_watcher = watcher

    logger.info("SheetIntake backend ready")
    yield

    # Shutdown
    logger.info("Shutting down SheetIntake backend...")
    watcher.stop()
    storage.close_engine()
    logger.info("SheetIntake backend stopped")


app = FastAPI(
    title="SheetIntake",
    version="0.1.0",
    description="Template-driven spreadsheet validation and loading into a "
                "relational table, with per-row error reports.",
    lifespan=lifespan,
)


@app.exception_handler(SheetIntakeError)
async def sheet_intake_error_handler(request: Request, exc: SheetIntakeError):
    logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    return error_response(exc)


app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(templates.router, prefix="/api", tags=["template"])
app.include_router(uploads.router, prefix="/api", tags=["uploads"])
app.include_router(reports.router, prefix="/api", tags=["reports"])
