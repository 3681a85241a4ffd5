"""File names for staged uploads and generated error reports.

Every name embeds a UUID v7 hex, so names sort by creation time and never
collide. Report names double as download keys, so ``is_report_file_name``
only accepts names this module could have produced.
"""

import re
from pathlib import Path
from typing import Optional

from uuid_extensions import uuid7

REPORT_PREFIX = "error-report-"
REPORT_SUFFIX = ".xlsx"

UPLOAD_KIND = "upl"
TEMPLATE_KIND = "tpl"

_REPORT_NAME = re.compile(rf"^{re.escape(REPORT_PREFIX)}[0-9a-f]{{32}}{re.escape(REPORT_SUFFIX)}$")
_SAFE_SUFFIX = re.compile(r"^\.[a-z0-9]{1,8}$")


def report_file_name() -> str:
    """Name for a new error report, e.g. ``error-report-0192...6d.xlsx``."""
    return f"{REPORT_PREFIX}{uuid7().hex}{REPORT_SUFFIX}"


def is_report_file_name(name: str) -> bool:
    return bool(_REPORT_NAME.match(name))


def staged_file_name(kind: str, original_name: Optional[str] = None) -> str:
    """Name for a file staged on disk while it is processed.

    Keeps the original extension (lower-cased) when it is a plain one; the
    rest of the client-supplied name is dropped.
    """
    suffix = Path(original_name or "").suffix.lower()
    if not _SAFE_SUFFIX.match(suffix):
        suffix = ""
    return f"{kind}_{uuid7().hex}{suffix}"
