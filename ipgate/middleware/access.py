from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

# We use starlette since FastAPI is built on starlette and so it's always
# already installed

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..auth import AuthError

log = logging.getLogger(__name__)


def client_address(request: Request, header: Optional[str]) -> Optional[str]:
    """Return the address the allowlist is checked against.

    With a proxy header configured the right-most value is used, that is the
    address appended by the nearest proxy."""
    if header:
        value = request.headers.get(header)
        if value:
            candidates = [item.strip() for item in value.split(",") if item.strip()]
            if candidates:
                return candidates[-1]
    client = request.client
    if client is None:
        return None
    return client.host


def is_exempt(path: str, exempt_paths: Iterable[str]) -> bool:
    for prefix in exempt_paths:
        base = prefix.rstrip("/")
        if not base:
            return True
        if path == base or path.startswith(base + "/"):
            return True
    return False


class AccessControlMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        runtime = getattr(request.app.state, "runtime", None)
        if runtime is None or not runtime.ready:
            if request.url.path == "/healthz":
                return await call_next(request)
            return JSONResponse({"detail": "Gateway not ready"}, status_code=503)

        access = runtime.config.access
        if is_exempt(request.url.path, access.exempt_paths):
            return await call_next(request)

        address = client_address(request, access.client_ip_header)
        try:
            request.state.auth = await runtime.authenticate(address)
        except AuthError as exc:
            log.debug("Rejecting %s %s: %s", request.method, request.url.path, exc)
            return JSONResponse({"detail": "Forbidden"}, status_code=403)
        return await call_next(request)


__all__ = ["AccessControlMiddleware", "client_address", "is_exempt"]
