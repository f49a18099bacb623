"""
Utility functions for the application.
"""
from typing import Any, Dict, Optional


def format_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """Format API acknowledgement response."""
    response = {"message": message}
    if data is not None:
        response["data"] = data
    return response


def format_error(kind: str, detail: Any = None, field: Optional[str] = None) -> Dict[str, Any]:
    """Format error response."""
    response = {"error": kind}
    if detail is not None:
        response["detail"] = detail
    if field:
        response["field"] = field
    return response
