"""
Response envelope shared by every route: {"success", "data", "message", ...}.

Errors raised anywhere as HTTPException are rendered into the same shape by the
handlers registered in main.py.
"""
import os
import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

DEBUG = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(extra)
    if data is not None:
        body["data"] = data
    return body


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "error": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"success": False, "message": "Validation failed", "errors": errors}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Something went wrong!"}
    if DEBUG:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)
