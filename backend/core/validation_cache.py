"""Allowed-Value Cache — per-column permitted values derived from the template.

Every string cell below the header (and below the type-tag row, when there is
one) is split on commas; each token is trimmed and lower-cased and added to
its column's allowed set. ``optional`` and ``none`` are always implicitly
allowed and never stored. Columns with no tokens are left out of the map,
which means "unconstrained".

The map is cached against the template's modification time. A stat call
decides between serving the cached snapshot and rebuilding it; content is
never hashed. Rebuilds replace the snapshot in a single assignment, so
concurrent readers see either the old or the new snapshot, never a mix.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from backend.core.errors import ValidationMapBuildFailed
from backend.core.sanitize import is_wildcard_token, sanitize_column_name
from backend.core.template_store import is_type_row
from backend.core.workbook import modified_time, read_rows

logger = logging.getLogger(__name__)

AllowedValueMap = dict[str, frozenset[str]]


@dataclass(frozen=True)
class ValidationSnapshot:
    """A built allowed-value map plus the template version it came from."""
    validation_map: AllowedValueMap
    header: list[str] = field(default_factory=list)
    source_version: Optional[int] = None


def build_validation_map(rows: list[list[Any]]) -> tuple[AllowedValueMap, list[str]]:
    """Scan template rows into (allowed-value map, sanitized header)."""
    if not rows or not rows[0]:
        raise ValueError("Template has no header row")

    header = [sanitize_column_name(h) for h in rows[0]]
    first_data_row = 1
    if len(rows) > 1 and is_type_row(rows[1]):
        first_data_row = 2

    validation_map: AllowedValueMap = {}
    for col_idx, name in enumerate(header):
        allowed: set[str] = set()
        for row in rows[first_data_row:]:
            cell = row[col_idx] if col_idx < len(row) else None
            if not isinstance(cell, str) or not cell:
                continue
            for token in cell.split(","):
                value = token.strip().lower()
                if value and not is_wildcard_token(value):
                    allowed.add(value)
        if allowed:
            validation_map[name] = frozenset(allowed)

    return validation_map, header


class ValidationCache:
    """Caches the allowed-value map keyed by the template's modification time."""

    def __init__(
        self,
        template_path: Path,
        stat: Callable[[Path], Optional[int]] = modified_time,
        reader: Callable[[Path], list[list[Any]]] = read_rows,
    ):
        self._path = Path(template_path)
        self._stat = stat
        self._reader = reader
        self._snapshot: Optional[ValidationSnapshot] = None
        self._builds = 0

    @property
    def builds(self) -> int:
        """Number of rebuilds performed since construction."""
        return self._builds

    def is_valid(self) -> bool:
        snapshot = self._snapshot
        if snapshot is None or snapshot.source_version is None:
            return False
        return self._stat(self._path) == snapshot.source_version

    def get_validation_map(self) -> ValidationSnapshot:
        current = self._stat(self._path)
        snapshot = self._snapshot
        if snapshot is not None and current is not None and snapshot.source_version == current:
            logger.debug("Using cached validation map")
            return snapshot

        logger.info(f"Building new validation map from {self._path}")
        try:
            rows = self._reader(self._path)
            validation_map, header = build_validation_map(rows)
        except Exception as e:
            logger.error(f"Failed to build validation map: {e}", exc_info=True)
            raise ValidationMapBuildFailed(f"Failed to build validation map: {e}") from e

        snapshot = ValidationSnapshot(
            validation_map=validation_map,
            header=header,
            source_version=current,
        )
        self._snapshot = snapshot
        self._builds += 1
        return snapshot

    def invalidate(self) -> None:
        self._snapshot = None
        logger.info("Validation cache cleared")

    def stats(self) -> dict:
        snapshot = self._snapshot
        return {
            "cached": snapshot is not None,
            "source_version": snapshot.source_version if snapshot else None,
            "constrained_columns": sorted(snapshot.validation_map) if snapshot else [],
            "builds": self._builds,
            "is_valid": self.is_valid(),
        }
