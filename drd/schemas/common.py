"""
Common schema types used across the API.

Every response body is an envelope: {"success": true, "data": ...} on
success and {"success": false, "message": ..., "code": ...} on error.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard success envelope."""

    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    success: bool = False
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None
    errors: Optional[List[Dict[str, Any]]] = None
    request_id: Optional[str] = None


class PaginatedData(BaseModel, Generic[T]):
    """Paginated list payload."""

    items: List[T]
    total: int
    limit: int = 50
    offset: int = 0
    has_more: bool = False

    @classmethod
    def create(cls, items: List[T], total: int, limit: int, offset: int) -> "PaginatedData[T]":
        return cls(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=(offset + len(items)) < total,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"


def ok(data: Any) -> Dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return {"success": True, "data": data}
