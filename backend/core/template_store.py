"""Template Store — derives the column definition from the template workbook.

Row 0 of the first sheet holds the column names, row 1 (optional) the type
tags. The artifact is re-read on every call; callers that need a stable view
must hold on to the returned TemplateDefinition.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Optional

from backend.core.errors import ReservedColumnPresent, TemplateMalformed, TemplateMissing
from backend.core.models import ColumnDescriptor, ColumnType, TemplateDefinition
from backend.core.sanitize import sanitize_column_name
from backend.core.storage import SURROGATE_KEY
from backend.core.workbook import modified_time, read_rows

logger = logging.getLogger(__name__)


def is_type_row(row: list[Any]) -> bool:
    """True if every non-empty cell of the row is a recognised type tag."""
    tags = [str(v).strip().upper() for v in row if v is not None and str(v).strip()]
    if not tags:
        return False
    known = {t.value for t in ColumnType}
    return all(tag in known for tag in tags)


def build_definition(rows: list[list[Any]]) -> TemplateDefinition:
    """Build a TemplateDefinition from the raw rows of a template sheet."""
    if not rows or not rows[0]:
        raise TemplateMalformed("Template has no header row")

    headers = rows[0]
    types = rows[1] if len(rows) > 1 else []

    columns: list[ColumnDescriptor] = []
    seen: set[str] = set()
    for index, raw_name in enumerate(headers):
        name = sanitize_column_name(raw_name)
        if not name:
            raise TemplateMalformed(
                f"Template column {index + 1} has an empty or invalid name: {raw_name!r}"
            )
        if name in seen:
            raise TemplateMalformed(f"Template defines column '{name}' more than once")
        seen.add(name)
        tag = types[index] if index < len(types) else None
        columns.append(ColumnDescriptor(
            name=name,
            type=ColumnType.from_tag(tag),
            position=index,
        ))

    return TemplateDefinition(columns=tuple(columns))


class TemplateStore:
    """Reads the operator-replaceable template artifact."""

    def __init__(self, template_path: Path, reserved_names: Optional[set[str]] = None):
        self._path = Path(template_path)
        self._reserved = {n.lower() for n in (reserved_names or set())}
        self._reserved.add(SURROGATE_KEY)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def modified_time(self) -> Optional[int]:
        return modified_time(self._path)

    def _load_definition(self, path: Path) -> TemplateDefinition:
        if not path.is_file():
            raise TemplateMissing(f"Template file not found at {path}")
        try:
            rows = read_rows(path)
        except Exception as e:
            raise TemplateMalformed(f"Template file {path} could not be parsed: {e}") from e
        return build_definition(rows)

    def get_template_definition(self) -> TemplateDefinition:
        return self._load_definition(self._path)

    def check_reserved(self, definition: TemplateDefinition) -> None:
        """Reject a definition that uses a name reserved for reports or storage."""
        for column in definition:
            if column.name.lower() in self._reserved:
                raise ReservedColumnPresent(
                    f"Template column '{column.name}' uses a reserved name. "
                    f"Rename it and upload the template again."
                )

    def replace(self, source_path: Path) -> TemplateDefinition:
        """Validate a candidate template and atomically swap it in."""
        definition = self._load_definition(Path(source_path))
        self.check_reserved(definition)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(f".{self._path.name}.incoming")
        shutil.copyfile(source_path, staging)
        os.replace(staging, self._path)
        logger.info(
            f"Template replaced with {len(definition)} columns: {', '.join(definition.names)}"
        )
        return definition
