"""
Operation Results

Every table-access operation returns an OperationResult instead of raising:
exactly one of `data` / `error` is set. The chat layer serializes it with
to_dict() and hands it back to the model as the tool result.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class OperationResult:
    """Result of a table-access operation."""

    data: Any = None
    error: Optional[str] = None
    # Set by in-memory statistics when the fetch hit its row limit
    truncated: Optional[bool] = None
    error_code: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def from_success(cls, data: Any, truncated: Optional[bool] = None) -> "OperationResult":
        """Create a successful result."""
        return cls(data=data, truncated=truncated)

    @classmethod
    def from_error(cls, error: str, error_code: Optional[str] = None) -> "OperationResult":
        """Create a failed result."""
        return cls(error=error, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the `{data, error}` shape (plus `truncated` when set)."""
        result: dict[str, Any] = {"data": self.data, "error": self.error}
        if self.truncated is not None:
            result["truncated"] = self.truncated
        return result
