"""Ingestion Engine — validates an uploaded workbook and loads its rows.

Takes an uploaded .xlsx file, checks its header against the current template,
validates every data row (shape, type coercion, allowed values), inserts the
valid rows in fixed-size batches and writes an error report for the rest.

Structural problems (unreadable file, reserved column, header mismatch,
allowed-value map failure) abort the upload with a SheetIntakeError before any
row is touched. Invalid rows are an expected outcome: they come back on the
result, never as exceptions. Batches commit independently; a failing batch
moves only its own rows to the rejected set.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from backend.core.config import settings
from backend.core.error_report import ReportRef, RowRejection, write_error_report
from backend.core.errors import ColumnMismatch, FileInvalid, ReservedColumnPresent
from backend.core.models import TemplateDefinition
from backend.core.sanitize import (
    is_wildcard_token,
    normalize_for_lookup,
    sanitize_cell,
    sanitize_column_name,
)
from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore
from backend.core.validation_cache import AllowedValueMap, ValidationCache
from backend.core.workbook import read_rows

logger = logging.getLogger(__name__)

DATABASE_ERROR_REASON = "Database Error (during batch insert)"


@dataclass
class IngestionResult:
    """Outcome of one upload."""
    inserted_count: int = 0
    rejected_rows: list[RowRejection] = field(default_factory=list)
    report: Optional[ReportRef] = None
    total_rows: int = 0
    duration_ms: int = 0

    @property
    def rejected_count(self) -> int:
        return len(self.rejected_rows)


def validate_upload_file(
    file_path: Path,
    original_name: Optional[str] = None,
    max_file_size: Optional[int] = None,
    allowed_extensions: Optional[Sequence[str]] = None,
) -> None:
    """Check extension, presence and size of an uploaded file."""
    name = original_name or file_path.name
    extensions = [e.lower() for e in (allowed_extensions or settings.allowed_extensions)]
    limit = max_file_size or settings.max_file_size

    if Path(name).suffix.lower() not in extensions:
        raise FileInvalid(
            f"Unsupported file type for '{name}'. Allowed: {', '.join(extensions)}"
        )
    if not file_path.is_file():
        raise FileInvalid(f"Uploaded file '{name}' does not exist")
    size = file_path.stat().st_size
    if size > limit:
        raise FileInvalid(
            f"File size {size} exceeds maximum allowed size of {limit} bytes"
        )


def sanitize_header(
    header: Sequence[Any],
    reserved_column: Optional[str] = None,
) -> list[str]:
    """Sanitize the uploaded header and reject it if it carries the error column."""
    reserved = reserved_column or settings.error_column
    sanitized = [sanitize_column_name(h) for h in header]
    if sanitize_column_name(reserved) in sanitized:
        raise ReservedColumnPresent(
            f"The uploaded file contains an '{reserved}' column. "
            f"Please remove it and re-upload."
        )
    return sanitized


def check_columns(sanitized: list[str], definition: TemplateDefinition) -> None:
    """Require the header to equal the template's column names, in order."""
    expected = definition.names
    if sanitized != expected:
        raise ColumnMismatch(
            "Uploaded file columns do not match template",
            expected=expected,
            received=sanitized,
        )


def validate_row(
    row: Sequence[Any],
    definition: TemplateDefinition,
    validation_map: AllowedValueMap,
    text_length: Optional[int] = None,
) -> tuple[list[Any], Optional[str]]:
    """Sanitize one data row and check it against the allowed-value map.

    Returns (sanitized values, reason). ``reason`` is None for accepted rows.
    Shape errors skip value checks; the first allowed-value violation stops
    further checks on the row.
    """
    length = text_length or settings.text_length
    expected = len(definition)
    if not row:
        return [], f"Expected {expected} columns, got an empty row"
    if len(row) != expected:
        return list(row), f"Expected {expected} columns, got {len(row)}"

    values = [sanitize_cell(raw, col.type, length) for raw, col in zip(row, definition)]

    for value, col in zip(values, definition):
        allowed = validation_map.get(col.name)
        if not allowed:
            continue
        normalized = normalize_for_lookup(value)
        if normalized and normalized not in allowed and not is_wildcard_token(normalized):
            display = value.isoformat() if hasattr(value, "isoformat") else value
            if isinstance(display, float) and display.is_integer():
                display = int(display)
            return values, (
                f'Invalid value "{display}" for column "{col.name}". '
                f"Allowed: {', '.join(sorted(allowed))}"
            )

    return values, None


def _insert_batches(
    storage: SqlStorage,
    columns: list[str],
    valid_rows: list[tuple[int, list[Any]]],
    batch_size: int,
    result: IngestionResult,
) -> None:
    """Insert valid rows batch by batch; a failed batch rejects only its rows."""
    for start in range(0, len(valid_rows), batch_size):
        batch = valid_rows[start:start + batch_size]
        try:
            result.inserted_count += storage.insert_rows(columns, [values for _, values in batch])
        except Exception as e:
            logger.error(
                f"Batch insert failed for rows {batch[0][0]}-{batch[-1][0]} "
                f"({len(batch)} rows): {e}"
            )
            for row_number, values in batch:
                result.rejected_rows.append(RowRejection(
                    row_number=row_number,
                    values=values,
                    reason=f"{DATABASE_ERROR_REASON}: {type(e).__name__}",
                ))


def run_ingestion(
    file_path: Path,
    store: TemplateStore,
    cache: ValidationCache,
    storage: SqlStorage,
    reports_dir: Optional[Path] = None,
    batch_size: Optional[int] = None,
    original_name: Optional[str] = None,
) -> IngestionResult:
    """Run a full upload: file checks, header match, row validation, load, report.

    Steps:
    1. Validate the file and parse its first sheet
    2. Sanitize the header; reject reserved columns and template mismatches
    3. Fetch the allowed-value map (build failures abort the upload)
    4. Validate each data row independently
    5. Insert valid rows in sequential batches
    6. Write an error report when any row was rejected
    """
    started = time.monotonic()
    file_path = Path(file_path)
    name = original_name or file_path.name
    size = batch_size or settings.batch_size

    # Step 1: File checks and parse
    validate_upload_file(file_path, original_name=name)
    try:
        rows = read_rows(file_path)
    except Exception as e:
        raise FileInvalid(f"Could not read spreadsheet '{name}': {e}") from e
    if not rows:
        raise FileInvalid(f"Spreadsheet '{name}' has no header row")

    # Step 2: Header checks
    try:
        header = sanitize_header(rows[0])
        definition = store.get_template_definition()
        check_columns(header, definition)
    except (ReservedColumnPresent, ColumnMismatch) as e:
        logger.warning(f"Rejected upload {name}: {e.message}")
        raise

    # Step 3: Allowed values
    validation_map = cache.get_validation_map().validation_map

    # Step 4: Row validation
    result = IngestionResult(total_rows=len(rows) - 1)
    valid_rows: list[tuple[int, list[Any]]] = []
    for index, row in enumerate(rows[1:]):
        row_number = index + 2  # spreadsheet row, header is row 1
        values, reason = validate_row(row, definition, validation_map)
        if reason is None:
            valid_rows.append((row_number, values))
        else:
            logger.debug(f"{name} row {row_number}: {reason}")
            result.rejected_rows.append(RowRejection(row_number, values, reason))

    # Step 5: Batched inserts
    _insert_batches(storage, definition.names, valid_rows, size, result)
    result.rejected_rows.sort(key=lambda r: r.row_number)

    # Step 6: Error report
    if result.rejected_rows:
        result.report = write_error_report(
            result.rejected_rows,
            definition,
            reports_dir or settings.resolve_path(settings.reports_dir),
        )

    result.duration_ms = int((time.monotonic() - started) * 1000)
    if result.rejected_rows:
        logger.info(
            f"File {name} processed with errors: {result.inserted_count} inserted, "
            f"{result.rejected_count} failed in {result.duration_ms}ms"
        )
    else:
        logger.info(
            f"File {name} processed successfully: {result.inserted_count} inserted "
            f"in {result.duration_ms}ms"
        )
    return result
