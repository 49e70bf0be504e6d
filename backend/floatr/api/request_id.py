"""Request ID helper for endpoints and error handlers.

Prefers the id stored on ``request.state`` by RequestIdMiddleware and falls back
to the id the observability middleware bound into the logging context.
"""

from __future__ import annotations

from typing import Optional

from starlette.requests import Request

from floatr.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default
