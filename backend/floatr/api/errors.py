"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from floatr.api.request_id import get_request_id
from floatr.domain.common.errors import FloatrError
from floatr.infra.rate_limit import RateLimitExceeded

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
}


def status_for(exc: Exception) -> int:
    return _STATUS_BY_KIND.get(getattr(exc, "kind", ""), status.HTTP_500_INTERNAL_SERVER_ERROR)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        errors = exc.errors()
        payload = {"detail": "validation_error", "kind": "validation", "request_id": rid}
        if errors and errors[0].get("loc"):
            payload["field"] = str(errors[0]["loc"][-1])
        payload["errors"] = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload)

    @app.exception_handler(FloatrError)
    async def domain_exc_handler(request: Request, exc: FloatrError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.reason, "kind": exc.kind, "request_id": rid}
        field = getattr(exc, "field", None)
        if field:
            payload["field"] = field
        code = status_for(exc)
        if code >= 500:
            logger.warning("domain error", extra={"reason": exc.reason, "kind": exc.kind})
        return JSONResponse(status_code=code, content=payload)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.reason, "kind": exc.kind, "request_id": rid}
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=payload)
