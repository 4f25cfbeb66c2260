"""
    Admin endpoints.

    Those endpoints are usually exposed only to localhost. Additional peers can be
    admitted through ``admin.networks`` in the configuration file. They allow
    termination of the daemon as well as reloading of the configuration (as
    SIGTERM and SIGHUP).
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..middleware.access import client_address
from ..runtime import GateRuntime

router = APIRouter()

LOOPBACK_HOSTS = {"127.0.0.1", "::1"}


async def get_runtime(request: Request) -> GateRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None or not runtime.ready:
        raise HTTPException(status_code=503, detail="Gateway not ready")
    return runtime


def _require_local_access(request: Request, runtime: GateRuntime) -> None:
    """
        Require local access enforces that the caller is one of the loopback
        addresses, the unix domain socket or a member of admin.networks.
        Behind a proxy (access.client_ip_header set) the caller is the
        forwarded address, not the proxy on loopback.
    """
    host = client_address(request, runtime.config.access.client_ip_header)

    if host is None:
        if runtime.config.listen.unix_socket:
            return
        raise HTTPException(status_code=403, detail="Forbidden")

    if host in LOOPBACK_HOSTS:
        return
    if not runtime.admin_allowed(host):
        raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/admin/reload")
async def admin_reload(request: Request, runtime: GateRuntime = Depends(get_runtime)):
    """
        Reloads the server - this re-reads the configuration file (!)
        This is equal to SIGHUP.
    """
    _require_local_access(request, runtime)
    await runtime.reload()
    return JSONResponse({"status": "reloaded"})


@router.post("/admin/shutdown")
async def admin_shutdown(request: Request, runtime: GateRuntime = Depends(get_runtime)):
    """
        Terminate our server like SIGTERM
    """
    _require_local_access(request, runtime)
    server = getattr(request.app.state, "server", None)
    if server is None:
        raise HTTPException(status_code=503, detail="Shutdown controller unavailable")
    if hasattr(server, "should_exit"):
        server.should_exit = True
    return JSONResponse({"status": "shutting_down"})


__all__ = ["router"]
