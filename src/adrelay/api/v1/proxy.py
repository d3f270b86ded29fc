# Proxy router — any REST call to a registered provider.
# Created: 2026-10-18

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from adrelay.api.deps import get_dispatcher
from adrelay.errors import ValidationError
from adrelay.proxy.dispatcher import MUTATING_METHODS, ProviderDispatcher, UpstreamResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Proxy"])

TIMEOUT_HEADER = "x-gateway-timeout"


async def read_json_body(request: Request):
    """Parsed JSON body for mutating methods, None otherwise."""
    if request.method not in MUTATING_METHODS:
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Request body must be JSON") from None


def request_timeout(request: Request) -> float | None:
    value = request.headers.get(TIMEOUT_HEADER)
    if not value:
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise ValidationError("X-Gateway-Timeout must be a number of seconds") from None
    if timeout <= 0:
        raise ValidationError("X-Gateway-Timeout must be positive")
    return timeout


def relay(result: UpstreamResponse) -> Response:
    if result.body is None:
        return Response(status_code=result.status_code)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.api_route(
    "/proxy/{provider}/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
)
async def proxy(
    provider: str,
    path: str,
    request: Request,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
):
    """Forward the call to ``provider`` with the gateway-held credential."""
    result = await dispatcher.forward(
        provider,
        path,
        request.method,
        await read_json_body(request),
        request.headers.get("authorization"),
        params=list(request.query_params.multi_items()),
        timeout=request_timeout(request),
    )
    return relay(result)
