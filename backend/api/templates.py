"""Template endpoints — inspect, download and replace the active template,
and browse the ingested rows by element."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.api.deps import (
    ERROR_RESPONSES,
    error_response,
    get_reconciler,
    get_storage,
    get_template_store,
    get_validation_cache,
)
from backend.core import element_views
from backend.core.config import settings
from backend.core.errors import ReservedColumnPresent, TemplateMalformed
from backend.core.models import (
    ElementDetailsResponse,
    ElementsResponse,
    TemplateResponse,
    TemplateUpdateResponse,
    VisualizationResponse,
)
from backend.core.naming import TEMPLATE_KIND, staged_file_name
from backend.core.schema_sync import SchemaReconciler
from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import ValidationCache

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)


@router.get("/template", response_model=TemplateResponse)
async def get_template(store: TemplateStore = Depends(get_template_store)):
    """Return the ordered column descriptors of the current template."""
    definition = store.get_template_definition()
    return TemplateResponse(columns=list(definition.columns))


@router.get("/template/download")
async def download_template(store: TemplateStore = Depends(get_template_store)):
    if not store.exists():
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Template file not found", "code": "TEMPLATE_MISSING"},
        )
    return FileResponse(store.path, filename="template.xlsx")


@router.post("/template", response_model=TemplateUpdateResponse)
async def upload_template(
    template: UploadFile = File(...),
    store: TemplateStore = Depends(get_template_store),
    cache: ValidationCache = Depends(get_validation_cache),
    reconciler: SchemaReconciler = Depends(get_reconciler),
):
    """Replace the template, re-sync the table schema and drop cached allowed values.

    - **template**: Excel file (.xlsx)
    """
    if not template.filename or not template.filename.lower().endswith(".xlsx"):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Only .xlsx files are allowed", "code": "FILE_INVALID"},
        )

    upload_dir = settings.resolve_path(settings.uploads_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged = upload_dir / staged_file_name(TEMPLATE_KIND, template.filename)
    staged.write_bytes(await template.read())

    try:
        definition = store.replace(staged)
    except (TemplateMalformed, ReservedColumnPresent) as e:
        logger.warning(f"Rejected template {template.filename}: {e.message}")
        return error_response(e, status_code=400)
    finally:
        Path(staged).unlink(missing_ok=True)

    cache.invalidate()
    # The watcher sees the same file change; the reconciler runs one sync at a time.
    changes = await run_in_threadpool(reconciler.sync)

    return TemplateUpdateResponse(
        message="Template updated and schema synced.",
        columns=list(definition.columns),
        schema_changes=[c.describe() for c in changes],
    )


@router.get("/template/validation-cache")
async def validation_cache_stats(cache: ValidationCache = Depends(get_validation_cache)):
    return cache.stats()


@router.get("/template/elements", response_model=ElementsResponse)
async def get_elements(
    store: TemplateStore = Depends(get_template_store),
    storage: SqlStorage = Depends(get_storage),
):
    """List the distinct values of the template's element column."""
    definition = store.get_template_definition()
    return await run_in_threadpool(element_views.list_elements, storage, definition)


@router.get("/template/elements/{element}", response_model=ElementDetailsResponse)
async def get_element_details(
    element: str,
    store: TemplateStore = Depends(get_template_store),
    storage: SqlStorage = Depends(get_storage),
):
    """Attributes and units of measure recorded for one element."""
    definition = store.get_template_definition()
    return await run_in_threadpool(element_views.element_details, storage, definition, element)


@router.get("/template/visualization", response_model=VisualizationResponse)
async def get_visualization(
    element: str,
    attribute: Optional[str] = None,
    uom: Optional[str] = None,
    store: TemplateStore = Depends(get_template_store),
    storage: SqlStorage = Depends(get_storage),
):
    """Rows for an element, optionally filtered by attribute and unit, with value distributions.

    - **element**: required element value
    - **attribute**, **uom**: optional filters
    """
    definition = store.get_template_definition()
    return await run_in_threadpool(
        element_views.visualization, storage, definition, element, attribute, uom,
    )
