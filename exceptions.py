"""
API error taxonomy and the handlers that render it.

Clients only distinguish three outcomes: bad input (400 with an error list),
not found (400 with a message) and server error (500).
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base exception for errors surfaced to API clients."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"msg": self.message}


class ValidationError(ApiError):
    """Raised when request fields fail validation. Carries one entry per violated rule."""

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__("Validation failed", status_code=400)
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        return {"errors": self.errors}


class NotFoundError(ApiError):
    # 400 rather than 404 is what existing clients expect.
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class UnauthorizedError(ApiError):
    def __init__(self, message: str):
        super().__init__(message, status_code=401)


class ServerError(ApiError):
    def __init__(self, message: str = "Server Error"):
        super().__init__(message, status_code=500)


def field_error(param: str, msg: str, value: Optional[Any] = None, location: str = "body") -> Dict[str, Any]:
    err = {"msg": msg, "param": param, "location": location}
    if value is not None:
        err["value"] = value
    return err


async def api_error_handler(request: Request, exc: ApiError):
    if isinstance(exc, ServerError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Render FastAPI body/path parsing failures in the same shape as ValidationError."""
    errors = []
    for e in exc.errors():
        loc = [str(part) for part in e.get("loc", ())]
        location = loc[0] if loc else "body"
        param = ".".join(loc[1:]) if len(loc) > 1 else location
        errors.append(field_error(param, e.get("msg", "Invalid value"), location=location))
    logger.debug("Rejected request to %s: %s", request.url.path, errors)
    return JSONResponse(status_code=400, content={"errors": errors})
