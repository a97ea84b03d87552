# Local HTTP API - FastAPI application
#
# Binds to 127.0.0.1 by default. The session token is printed by the
# launcher on startup; clients send it in X-Session-Token.

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..core.config import VaultConfig
from ..vault import VaultManager
from .security import get_session_token, initialize_session_token
from .vault_routes import router as vault_router, set_vault_manager

logger = logging.getLogger(__name__)

app = FastAPI(
    title="chaff-vault API",
    description="Local API for the client-side encrypted vault",
    version=__version__,
)

app.include_router(vault_router)


@app.on_event("startup")
async def startup_event():
    """Generate the API token if the launcher has not done it already."""
    try:
        get_session_token()
    except RuntimeError:
        initialize_session_token()
    logger.info("chaff-vault API started")


@app.on_event("shutdown")
async def shutdown_event():
    """Lock the vault so the key does not outlive the server."""
    from .vault_routes import _vault_manager

    if _vault_manager is not None:
        _vault_manager.auth.logout()
    logger.info("chaff-vault API stopped")


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {"name": "chaff-vault API", "version": __version__}


def start_api_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    config: Optional[VaultConfig] = None,
) -> None:
    """
    Start the API server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
        config: Vault configuration; read from the environment if None
    """
    set_vault_manager(VaultManager.from_config(config))
    token = initialize_session_token()
    print(f"X-Session-Token: {token}", flush=True)
    uvicorn.run(app, host=host, port=port, log_level="info")
