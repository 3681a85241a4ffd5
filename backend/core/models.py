"""Pydantic models for template columns, stored columns and API responses."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict


class ColumnType(str, Enum):
    INT = "INT"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DATE = "DATE"
    TEXT = "TEXT"

    @classmethod
    def from_tag(cls, tag) -> "ColumnType":
        """Parse a template type tag; absent or unknown tags fall back to TEXT."""
        if tag is None:
            return cls.TEXT
        try:
            return cls(str(tag).strip().upper())
        except ValueError:
            return cls.TEXT

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INT, ColumnType.FLOAT, ColumnType.DOUBLE)


# --- Template / storage models ---


class ColumnDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType = ColumnType.TEXT
    position: int


@dataclass(frozen=True, eq=False)
class TemplateDefinition:
    """Ordered column list parsed from one snapshot of the template.

    Two definitions are equal iff their ordered (name, type) sequences match.
    """
    columns: tuple[ColumnDescriptor, ...]

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.columns]

    def get(self, name: str) -> Optional[ColumnDescriptor]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self.columns)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TemplateDefinition):
            return NotImplemented
        return [(c.name, c.type) for c in self.columns] == \
               [(c.name, c.type) for c in other.columns]

    def __hash__(self) -> int:
        return hash(tuple((c.name, c.type) for c in self.columns))


class StoredColumn(BaseModel):
    name: str
    sql_type: str


# --- API response models ---


class TemplateResponse(BaseModel):
    columns: list[ColumnDescriptor]


class TemplateUpdateResponse(BaseModel):
    success: bool = True
    message: str
    columns: list[ColumnDescriptor]
    schema_changes: list[str] = []


class UploadResponse(BaseModel):
    success: bool
    message: str
    rowsInserted: int
    rowsFailed: int = 0
    reportUrl: Optional[str] = None
    code: Optional[str] = None


class ElementsResponse(BaseModel):
    success: bool = True
    elements: list[Any]
    element_column: str


class ElementDetailsResponse(BaseModel):
    success: bool = True
    element: str
    attributes: list[Any]
    uoms: list[Any]
    element_column: str
    attribute_column: Optional[str] = None
    uom_column: Optional[str] = None


class VisualizationResponse(BaseModel):
    success: bool = True
    data: list[dict[str, Any]]
    analytics: dict[str, Any]
    filters: dict[str, Optional[str]]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    expected: Optional[list[str]] = None
    received: Optional[list[str]] = None
    available_columns: Optional[list[str]] = None
