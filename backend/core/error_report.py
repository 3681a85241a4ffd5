"""Error report — writes rejected rows to a downloadable workbook."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from backend.core.config import settings
from backend.core.naming import report_file_name
from backend.core.models import TemplateDefinition
from backend.core.workbook import write_workbook

logger = logging.getLogger(__name__)

REPORT_SHEET = "Errors"
REUPLOAD_HINT = (
    "Please remove this error column before re-uploading your file, "
    "otherwise it will give an error."
)


@dataclass(frozen=True)
class RowRejection:
    """A rejected data row: its sanitized values, sheet row number and reason."""
    row_number: int
    values: list[Any]
    reason: str


@dataclass(frozen=True)
class ReportRef:
    file_name: str
    path: Path

    @property
    def url(self) -> str:
        return f"/api/reports/{self.file_name}"


def report_headers(definition: TemplateDefinition) -> list[str]:
    return definition.names + [settings.row_number_column, settings.error_column]


def write_error_report(
    rejections: Sequence[RowRejection],
    definition: TemplateDefinition,
    reports_dir: Path,
) -> ReportRef:
    """Write one report row per rejection: template columns, row number, reason."""
    width = len(definition)
    rows = []
    for rejection in rejections:
        values = list(rejection.values[:width])
        values.extend([None] * (width - len(values)))
        rows.append(values + [rejection.row_number, f"{rejection.reason} -- {REUPLOAD_HINT}"])

    file_name = report_file_name()
    path = write_workbook(Path(reports_dir) / file_name, report_headers(definition), rows, REPORT_SHEET)
    logger.info(f"Wrote error report {file_name} with {len(rows)} rows")
    return ReportRef(file_name=file_name, path=path)
