"""
TableDB - Exceptions

Every failure surfaced by the store derives from TableDBError so callers
(and the HTTP layer) can handle the whole family in one place.
A missing table file is never an error: it reads as an empty table.
"""

from typing import Any, Dict, Optional


class TableDBError(Exception):
    """Base exception for TableDB."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON error responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidTableName(TableDBError):
    """Raised when a table name cannot be mapped to a single file."""

    def __init__(self, table: str):
        super().__init__(
            code="INVALID_TABLE_NAME",
            message=f"Invalid table name: {table!r}",
            details={"table": table},
        )


class SnapshotReadError(TableDBError):
    """Raised when a table file exists but cannot be read."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            code="SNAPSHOT_READ_FAILED",
            message=f"Failed to read table '{table}': {reason}",
            details={"table": table},
        )


class SnapshotDecodeError(TableDBError):
    """Raised when a table file does not hold a JSON array of records."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            code="SNAPSHOT_DECODE_FAILED",
            message=f"Corrupt snapshot for table '{table}': {reason}",
            details={"table": table},
        )


class SnapshotWriteError(TableDBError):
    """Raised when writing or renaming a table file fails."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            code="SNAPSHOT_WRITE_FAILED",
            message=f"Failed to persist table '{table}': {reason}",
            details={"table": table},
        )


class IndexBuildError(TableDBError):
    """Raised when a secondary index cannot be built."""

    def __init__(self, table: str, field: str, reason: str):
        super().__init__(
            code="INDEX_BUILD_FAILED",
            message=f"Cannot index '{table}' on '{field}': {reason}",
            details={"table": table, "field": field},
        )


class StoreClosedError(TableDBError):
    """Raised when the store is used before connect() or after close()."""

    def __init__(self, operation: str):
        super().__init__(
            code="STORE_CLOSED",
            message=f"Cannot {operation}: storage provider is not connected",
        )


class EntityNotFound(TableDBError):
    """Raised when an update targets a record that does not exist."""

    def __init__(self, table: str, key: Any):
        super().__init__(
            code="NOT_FOUND",
            message=f"Entity not found in '{table}': {key}",
            details={"table": table, "key": key},
        )


class InvalidRangeError(TableDBError):
    """Raised when range bounds cannot be compared with a field's values."""

    def __init__(self, table: str, field: str, reason: str):
        super().__init__(
            code="INVALID_RANGE",
            message=f"Cannot range over '{table}.{field}': {reason}",
            details={"table": table, "field": field},
        )
