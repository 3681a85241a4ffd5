"""FastAPI dependencies exposing the components created at startup."""

from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from backend.core.errors import ColumnMismatch, ElementColumnMissing, SheetIntakeError
from backend.core.models import ErrorResponse
from backend.core.schema_sync import SchemaReconciler
from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import ValidationCache

# OpenAPI documentation for the error body every route can return
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _state(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(status_code=503, detail=f"Service not ready: {name} unavailable")
    return component


async def get_template_store(request: Request) -> TemplateStore:
    return _state(request, "template_store")


async def get_validation_cache(request: Request) -> ValidationCache:
    return _state(request, "validation_cache")


async def get_storage(request: Request) -> SqlStorage:
    return _state(request, "storage")


async def get_reconciler(request: Request) -> SchemaReconciler:
    return _state(request, "reconciler")


def error_response(error: SheetIntakeError, status_code: Optional[int] = None) -> JSONResponse:
    """Render a SheetIntakeError as the standard error body."""
    body = ErrorResponse(error=error.message, code=error.code)
    if isinstance(error, ColumnMismatch):
        body.expected = error.expected
        body.received = error.received
    if isinstance(error, ElementColumnMissing):
        body.available_columns = error.available_columns
    return JSONResponse(
        status_code=status_code or error.status_code,
        content=body.model_dump(exclude_none=True),
    )
