"""
Expense Tracker API — Error Response Schema
=============================================

Shape of every error body produced by the handlers in main.py:

    {
        "success": false,
        "error": "Route not found: GET /nope",
        "code": "route_not_found",
        "request_id": "a1b2c3d4",
        "details": {...},       # validation errors only
        "stack": [...]          # unhandled errors, development only
    }
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    request_id: Optional[str] = None
    details: Optional[Any] = None
    stack: Optional[List[str]] = None


def error_body(
    message: str,
    code: str,
    *,
    request_id: Optional[str] = None,
    details: Any = None,
    stack: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """ErrorResponse as a plain dict; `details` and `stack` only when set."""
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "request_id": request_id or None,
    }
    if details is not None:
        body["details"] = details
    if stack is not None:
        body["stack"] = stack
    return body
