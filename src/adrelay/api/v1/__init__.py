# API v1 router aggregation.
# Created: 2026-10-18
#
# mount_v1_routers(app) registers all domain routers at /api/v1/.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from adrelay.api.v1.schemas.common import ERROR_RESPONSES

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

AUTH_ROUTER = "adrelay.api.v1.auth"

_V1_ROUTERS: list[tuple[str, str, str]] = [
    # (module_path, attr_name, tag)
    ("adrelay.api.v1.health", "router", "Health"),
    (AUTH_ROUTER, "router", "Auth"),
    ("adrelay.api.v1.proxy", "router", "Proxy"),
    ("adrelay.api.v1.uploads", "router", "Uploads"),
    ("adrelay.api.v1.metrics", "router", "Metrics"),
]


def mount_v1_routers(app: FastAPI, *, include_auth: bool = True) -> list[str]:
    """Mount the v1 routers on *app* under ``/api/v1``.

    ``include_auth=False`` leaves the OAuth routes out, for deployments
    missing the mandatory OAuth settings. Returns the mounted module paths.
    """
    mounted = []
    for module_path, attr_name, tag in _V1_ROUTERS:
        if module_path == AUTH_ROUTER and not include_auth:
            logger.debug("Skipping v1 router %s", module_path)
            continue
        router = getattr(importlib.import_module(module_path), attr_name)
        app.include_router(router, prefix="/api/v1", responses=ERROR_RESPONSES)
        mounted.append(module_path)
        logger.debug("Mounted v1 router: %s (%s)", module_path, tag)
    return mounted
