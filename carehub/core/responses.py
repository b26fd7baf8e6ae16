"""
JSON envelope shared by every endpoint: {success, message, data, error}.
"""
from typing import Any


def ok(data: Any = None, message: str | None = None, **extra: Any) -> dict:
    """
    Build a success envelope.

    Extra keyword arguments are placed at the top level next to `data`,
    for endpoints whose clients read totals or pagination from there.
    """
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def fail(message: str, error: Any = None) -> dict:
    """Build a failure envelope."""
    body: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body
