# Metrics router — ads reporting queries.
# Created: 2026-10-18

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from adrelay.api.deps import get_dispatcher
from adrelay.api.v1.proxy import read_json_body, relay, request_timeout
from adrelay.errors import ValidationError
from adrelay.metrics.queries import build_metrics_query
from adrelay.proxy.dispatcher import ProviderDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Metrics"])


@router.api_route("/metrics/{provider}", methods=["GET", "POST"])
async def metrics(
    provider: str,
    request: Request,
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
):
    """Run a reporting query. GET takes query parameters, POST a JSON object."""
    params: dict = dict(request.query_params)
    body = await read_json_body(request)
    if body is not None:
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        params.update(body)

    query = build_metrics_query(provider, params)
    result = await dispatcher.forward(
        query.provider,
        query.path,
        query.method,
        query.body,
        request.headers.get("authorization"),
        timeout=request_timeout(request),
    )
    if result.ok:
        return {"success": True, "data": result.body}
    return relay(result)
