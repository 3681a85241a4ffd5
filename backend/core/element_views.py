"""Element views — read-only queries over the ingested table.

Columns play a role by name: the first template column whose name contains
"element" identifies the element, "attribute" and "uom" (unit of measure)
are optional companions. All identifiers come from the template definition
and all filter values are bound parameters.

1. list_elements: distinct non-empty element values
2. element_details: distinct attributes and units recorded for one element
3. visualization: matching rows plus per-column value distributions
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from backend.core.errors import ElementColumnMissing
from backend.core.models import TemplateDefinition
from backend.core.storage import SqlStorage

ELEMENT_ROLE = "element"
ATTRIBUTE_ROLE = "attribute"
UOM_ROLE = "uom"


@dataclass(frozen=True)
class ElementColumns:
    element: str
    attribute: Optional[str] = None
    uom: Optional[str] = None


def find_role_column(definition: TemplateDefinition, role: str) -> Optional[str]:
    """First column whose name contains ``role``, case-insensitively."""
    for col in definition:
        if role in col.name.lower():
            return col.name
    return None


def resolve_element_columns(definition: TemplateDefinition) -> ElementColumns:
    element = find_role_column(definition, ELEMENT_ROLE)
    if element is None:
        raise ElementColumnMissing(
            "No element column found in template",
            available_columns=definition.names,
        )
    return ElementColumns(
        element=element,
        attribute=find_role_column(definition, ATTRIBUTE_ROLE),
        uom=find_role_column(definition, UOM_ROLE),
    )


def _unique(values) -> list[Any]:
    """Truthy values in first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


def _distribution_key(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_analytics(rows: list[dict[str, Any]], definition: TemplateDefinition) -> dict[str, Any]:
    """Count occurrences of each non-empty value, per template column."""
    distributions: dict[str, dict[str, int]] = {}
    for col in definition:
        counts: dict[str, int] = {}
        for row in rows:
            value = row.get(col.name)
            if not value:
                continue
            key = _distribution_key(value)
            counts[key] = counts.get(key, 0) + 1
        if counts:
            distributions[col.name] = counts
    return {"total_records": len(rows), "summary": {}, "distributions": distributions}


def list_elements(storage: SqlStorage, definition: TemplateDefinition) -> dict[str, Any]:
    columns = resolve_element_columns(definition)
    values = [row[0] for row in storage.distinct_values([columns.element])]
    return {"elements": _unique(values), "element_column": columns.element}


def element_details(
    storage: SqlStorage,
    definition: TemplateDefinition,
    element: str,
) -> dict[str, Any]:
    columns = resolve_element_columns(definition)
    selected = [columns.element]
    for name in (columns.attribute, columns.uom):
        if name:
            selected.append(name)
    rows = storage.distinct_values(selected, filters={columns.element: element})

    attributes: list[Any] = []
    uoms: list[Any] = []
    index = 1
    if columns.attribute:
        attributes = _unique(row[index] for row in rows)
        index += 1
    if columns.uom:
        uoms = _unique(row[index] for row in rows)

    return {
        "element": element,
        "attributes": attributes,
        "uoms": uoms,
        "element_column": columns.element,
        "attribute_column": columns.attribute,
        "uom_column": columns.uom,
    }


def visualization(
    storage: SqlStorage,
    definition: TemplateDefinition,
    element: str,
    attribute: Optional[str] = None,
    uom: Optional[str] = None,
) -> dict[str, Any]:
    """Rows for one element (optionally narrowed by attribute and unit) with analytics.

    An attribute or unit filter is ignored when the template has no column
    for that role.
    """
    columns = resolve_element_columns(definition)
    filters: dict[str, Any] = {columns.element: element}
    if attribute and columns.attribute:
        filters[columns.attribute] = attribute
    if uom and columns.uom:
        filters[columns.uom] = uom

    rows = storage.select_rows(definition.names, filters=filters)
    return {
        "data": rows,
        "analytics": build_analytics(rows, definition),
        "filters": {"element": element, "attribute": attribute or None, "uom": uom or None},
    }
