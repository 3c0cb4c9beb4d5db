"""Operation outcome types.

Expected failures (absence, quota, corrupt records, remote misses, invalid
input, partial cascades) are reported through these values instead of
exceptions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers."""
    NOT_AVAILABLE = "not_available"                  # Host storage missing or broken
    QUOTA_EXCEEDED = "quota_exceeded"                # Value larger than per-value quota
    PARSE_ERROR = "parse_error"                      # Stored record is corrupt
    REMOTE_LOOKUP_FAILURE = "remote_lookup_failure"  # Candidate lookup failed
    VALIDATION_ERROR = "validation_error"            # Missing field or duplicate name
    CASCADE_WRITE_FAILURE = "cascade_write_failure"  # Some dependent rewrites failed
    WRITE_FAILED = "write_failed"                    # Store rejected the write
    NOT_FOUND = "not_found"


@dataclass
class OperationResult:
    """Result of an entity mutation.

    `failed_ids` lists command ids whose cascade rewrite failed; those that
    were rewritten before the failure stay rewritten.
    """
    success: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    entity: Optional[Any] = None
    updated_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)

    @classmethod
    def ok(cls, entity: Any = None, updated_ids: Optional[List[int]] = None) -> "OperationResult":
        return cls(success=True, entity=entity, updated_ids=list(updated_ids or []))

    @classmethod
    def fail(cls, error: ErrorKind, message: str, **kwargs) -> "OperationResult":
        return cls(success=False, error=error, message=message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        entity = self.entity
        if hasattr(entity, "model_dump"):
            entity = entity.model_dump()
        return {
            "success": self.success,
            "error": self.error.value if self.error else None,
            "message": self.message,
            "entity": entity,
            "updated_ids": self.updated_ids,
            "failed_ids": self.failed_ids,
        }


@dataclass
class StorageInfo:
    """Namespace usage against the host store's capacity."""
    used: int
    available: int
    percentage: int
