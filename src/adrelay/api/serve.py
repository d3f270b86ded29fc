"""FastAPI application factory and server runner for the gateway.

The app carries CORS for the configured browser origins, a handler that turns
every ``GatewayError`` into ``{"detail", "code"}`` JSON, and the ``/api/v1``
routers. Missing OAuth settings disable only the ``/auth`` routes; proxying,
metrics and health keep serving.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adrelay import __version__
from adrelay.api.deps import shutdown_dependencies
from adrelay.config import Settings, get_settings
from adrelay.errors import GatewayError

logger = logging.getLogger(__name__)


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.kind, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await shutdown_dependencies()


def create_api_app(settings: Settings | None = None) -> FastAPI:
    """Build the gateway application."""
    from adrelay.api.v1 import mount_v1_routers

    explicit = settings is not None
    settings = settings or get_settings()

    app = FastAPI(
        title="adrelay",
        description="Credential-holding gateway for ad and social platform APIs.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Gateway-Timeout"],
    )

    install_error_handlers(app)
    if explicit:
        app.dependency_overrides[get_settings] = lambda: settings

    # --- Routers --------------------------------------------------------
    missing = settings.missing_oauth_settings()
    if missing:
        logger.error("OAuth routes disabled, missing settings: %s", ", ".join(missing))
    mount_v1_routers(app, include_auth=not missing)

    return app


def run_api_server(
    host: str | None = None,
    port: int | None = None,
    dev: bool = False,
) -> None:
    """Start the gateway under uvicorn."""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    logger.info("adrelay %s listening on http://%s:%s (docs at /api/v1/docs)", __version__, host, port)

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "adrelay.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        uvicorn.run(create_api_app(settings), host=host, port=port, log_config=None)
