"""Upload endpoint — validates a workbook against the template and loads it."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend.api.deps import (
    ERROR_RESPONSES,
    error_response,
    get_storage,
    get_template_store,
    get_validation_cache,
)
from backend.core.config import settings
from backend.core.errors import FileInvalid, SheetIntakeError
from backend.core.ingestion_engine import run_ingestion
from backend.core.models import UploadResponse
from backend.core.naming import UPLOAD_KIND, staged_file_name
from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import ValidationCache

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)


@router.post("/uploads", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    store: TemplateStore = Depends(get_template_store),
    cache: ValidationCache = Depends(get_validation_cache),
    storage: SqlStorage = Depends(get_storage),
):
    """Upload a filled-in template and insert its valid rows.

    - **file**: Excel file (.xlsx) whose header matches the template
    """
    original_name = Path(file.filename or "upload.xlsx").name
    content = await file.read()
    logger.info(f"Upload received: {original_name} ({len(content)} bytes)")

    if len(content) > settings.max_file_size:
        return error_response(FileInvalid(
            f"File size exceeds maximum allowed size of {settings.max_file_size} bytes"
        ))

    upload_dir = settings.resolve_path(settings.uploads_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / staged_file_name(UPLOAD_KIND, original_name)
    file_path.write_bytes(content)

    try:
        result = await run_in_threadpool(
            run_ingestion,
            file_path,
            store=store,
            cache=cache,
            storage=storage,
            original_name=original_name,
        )
    except SheetIntakeError as e:
        logger.warning(f"Upload {original_name} failed: [{e.code}] {e.message}")
        return error_response(e)
    finally:
        file_path.unlink(missing_ok=True)

    if result.rejected_rows:
        body = UploadResponse(
            success=False,
            message="File processed with errors. Please download the error report "
                    "and re-upload after correcting the issues.",
            rowsInserted=result.inserted_count,
            rowsFailed=result.rejected_count,
            reportUrl=result.report.url if result.report else None,
            code="PROCESSED_WITH_ERRORS",
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    return UploadResponse(
        success=True,
        message="File processed successfully. All rows inserted.",
        rowsInserted=result.inserted_count,
    )
