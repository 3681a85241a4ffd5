"""Request- and template-level failures.

Each error carries a stable ``code`` that the API layer returns alongside the
message. Row-level problems are never raised; they are collected as
``RowRejection`` records on the ingestion result.
"""

from typing import Optional


class SheetIntakeError(Exception):
    code = "PROCESSING_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TemplateMissing(SheetIntakeError):
    code = "TEMPLATE_MISSING"


class TemplateMalformed(SheetIntakeError):
    code = "TEMPLATE_MALFORMED"


class ValidationMapBuildFailed(SheetIntakeError):
    code = "VALIDATION_MAP_BUILD_FAILED"


class FileInvalid(SheetIntakeError):
    code = "FILE_INVALID"
    status_code = 400


class ReservedColumnPresent(SheetIntakeError):
    code = "ERROR_COLUMN_DETECTED"
    status_code = 400


class ColumnMismatch(SheetIntakeError):
    code = "COLUMN_MISMATCH"
    status_code = 400

    def __init__(self, message: str, expected: list[str], received: list[str]):
        super().__init__(message)
        self.expected = expected
        self.received = received


class SchemaSyncFailed(SheetIntakeError):
    code = "SCHEMA_SYNC_FAILED"

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class ElementColumnMissing(SheetIntakeError):
    code = "ELEMENT_COLUMN_MISSING"
    status_code = 404

    def __init__(self, message: str, available_columns: list[str]):
        super().__init__(message)
        self.available_columns = available_columns
