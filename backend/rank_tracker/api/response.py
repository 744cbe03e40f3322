import uuid
from typing import Any

from fastapi import Request


def request_meta(request: Request, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {"request_id": getattr(request.state, "request_id", None) or uuid.uuid4().hex}
    meta.update(extra)
    return meta


def envelope(request: Request, data: dict | None, error: dict | None = None) -> dict:
    return {"data": data, "meta": request_meta(request), "error": error}


def exception_envelope(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: dict | None = None,
) -> dict:
    error = {"code": code, "message": message, "details": details or {}}
    return {"success": False, "errors": [error], "meta": request_meta(request, status_code=status_code)}
