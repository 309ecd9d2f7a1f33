import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from webhook_engine.dependencies import get_providers
from webhook_engine.ingestion import IngestionOrchestrator
from webhook_engine.logging_setup import request_id_var
from webhook_engine.models import ErrorResponse
from webhook_engine.providers import Provider
from webhook_engine.verification import RawDelivery

logger = logging.getLogger(__name__)
router = APIRouter()

REQUEST_ID_HEADER = "X-Request-Id"


@router.post("/webhooks/{provider_name}")
async def post_webhook(
    provider_name: str,
    request: Request,
    providers: dict[str, Provider] = Depends(get_providers),
) -> JSONResponse:
    request_id = uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        provider = providers.get(provider_name)
        if provider is None:
            logger.info("Delivery for unknown provider %s", provider_name)
            body = ErrorResponse(
                code="WEBHOOK_PROVIDER_UNKNOWN",
                message="Unknown webhook provider",
                request_id=request_id,
            ).to_body()
            return JSONResponse(content=body, status_code=404, headers={REQUEST_ID_HEADER: request_id})
        delivery = RawDelivery.from_request(await request.body(), request.headers)
        orchestrator = IngestionOrchestrator(provider, request.app.state.settings)
        result = await orchestrator.ingest(delivery, request_id)
        return JSONResponse(content=result.body, status_code=result.status_code, headers={REQUEST_ID_HEADER: request_id})
    finally:
        request_id_var.reset(token)


@router.get("/webhooks/{provider_name}/events")
async def handled_event_types(
    provider_name: str,
    providers: dict[str, Provider] = Depends(get_providers),
) -> dict:
    provider = providers.get(provider_name)
    if provider is None:
        raise HTTPException(status_code=404)
    return {"provider": provider.name, "eventTypes": list(provider.registry.event_types)}


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/ready")
async def ready(request: Request) -> dict:
    if not request.app.state.ready:
        raise HTTPException(status_code=503)
    return {"status": "ok"}
