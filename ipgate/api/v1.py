"""Public access decision API."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..auth import AuthError
from ..middleware.access import client_address
from ..runtime import GateRuntime

router = APIRouter(prefix="/v1")


async def get_runtime(request: Request) -> GateRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None or not runtime.ready:
        raise HTTPException(status_code=503, detail="Gateway not ready")
    return runtime


@router.get("/access")
async def access(request: Request, runtime: GateRuntime = Depends(get_runtime)):
    """
        Forward-auth check. Requests only reach this handler once the access
        middleware accepted the client, so a 200 means "allowed".
    """
    auth = getattr(request.state, "auth", None)
    if auth is None:
        # path was exempted from the middleware, decide here
        address = client_address(request, runtime.config.access.client_ip_header)
        try:
            auth = await runtime.authenticate(address)
        except AuthError as exc:
            raise HTTPException(status_code=403, detail="Forbidden") from exc
    return JSONResponse({"client_ip": auth.client_ip, "allowed": True})


@router.post("/check")
async def check(
    payload: Dict[str, Any] = Body(...),
    runtime: GateRuntime = Depends(get_runtime),
):
    """
        Evaluate an arbitrary address against the configured allowlist or
        against ``allowed_ips`` from the request body.
    """
    client_ip = payload.get("client_ip")
    if not isinstance(client_ip, str) or not client_ip:
        raise HTTPException(status_code=400, detail="client_ip field is required")

    allowed_ips = payload.get("allowed_ips")
    if allowed_ips is not None and not isinstance(allowed_ips, str):
        raise HTTPException(status_code=400, detail="allowed_ips must be a string")

    allowed = await runtime.check(client_ip, allowed_ips)
    return JSONResponse({"client_ip": client_ip, "allowed": allowed})


__all__ = ["router"]
