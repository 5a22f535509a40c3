"""
HTTP routes of the PII Redaction Proxy.

- POST /v1/chat/completions: OpenAI-compatible, JSON or SSE
- POST /debug/redact: run the redaction pipeline on arbitrary text
- GET /health, GET /v1/health: liveness plus dependency status
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from pii_proxy.api.dependencies import (
    admitted_session,
    get_debug_classifiers,
    get_proxy_service,
    get_redaction_service,
    get_settings,
    get_store,
)
from pii_proxy.api.models import DebugRedactRequest, DebugRedactResponse, ErrorResponse, HealthResponse
from pii_proxy.config import Settings
from pii_proxy.inference.model_cache import ClassifierCache
from pii_proxy.persistence.store import KeyValueStore
from pii_proxy.pii.redactor import RedactionService
from pii_proxy.proxy.exceptions import RequestValidationError
from pii_proxy.proxy.service import ProxyService

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/v1/chat/completions",
    summary="Chat completion with PII redaction",
    description="""
    OpenAI-compatible chat completion. PII in message content is replaced
    before the request leaves the proxy, and PII in the model's answer is
    replaced before it reaches the client.

    With "stream": true the response is a text/event-stream whose content
    deltas are re-segmented into sentence-sized chunks for redaction.
    """,
    responses={
        200: {"description": "Redacted completion (JSON or SSE)"},
        400: {"model": ErrorResponse, "description": "Body missing a messages array"},
        403: {"model": ErrorResponse, "description": "Session blocked for repeated PII exposure"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "PII classifier unavailable"},
        503: {"model": ErrorResponse, "description": "PII detection timed out (fail-closed)"},
    },
)
async def chat_completions(
    request: Request,
    session_id: str = Depends(admitted_session),
    proxy: ProxyService = Depends(get_proxy_service),
):
    try:
        body = await request.json()
    except ValueError as e:
        raise RequestValidationError("Body must be valid JSON.") from e

    if isinstance(body, dict) and body.get("stream") is True:
        frames = await proxy.handle_stream(body, session_id)
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    return JSONResponse(await proxy.handle_chat_completion(body, session_id))


@router.post(
    "/debug/redact",
    response_model=DebugRedactResponse,
    response_model_exclude_none=True,
    summary="Run redaction on arbitrary text",
    description="""
    Diagnostic endpoint: returns the redacted text, located entities and
    optionally the classifier's raw token output. With modelId the raw
    output comes from that model, loaded on first use and cached. Does not
    touch session risk. Disable or firewall it in production.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Empty text"},
        502: {"model": ErrorResponse, "description": "Requested model could not be loaded"},
    },
)
async def debug_redact(
    payload: DebugRedactRequest,
    redaction: RedactionService = Depends(get_redaction_service),
    debug_classifiers: ClassifierCache = Depends(get_debug_classifiers),
) -> DebugRedactResponse:
    if not payload.text.strip():
        raise RequestValidationError('Body must include a non-empty "text" field.')

    result = await redaction.redact(payload.text)
    raw = None
    if payload.include_raw:
        classifier = redaction.classifier
        if payload.model_id:
            classifier = await debug_classifiers.get(payload.model_id, payload.quantized)
        raw = await classifier.raw_output(payload.text)
        if raw.get("model_id") is None:
            raw["model_id"] = "default"

    return DebugRedactResponse(input=payload.text, redaction=result, raw=raw)


async def _health(
    settings: Settings,
    redaction: RedactionService,
    store: KeyValueStore,
) -> JSONResponse:
    services = {
        "classifier": "ok" if await redaction.classifier.health_check() else "unavailable",
        "store": "ok" if await store.ping() else "unreachable",
    }

    if all(value == "ok" for value in services.values()):
        health_status, status_code = "ok", status.HTTP_200_OK
    elif services["classifier"] == "ok":  # Classifier is critical
        health_status, status_code = "degraded", status.HTTP_200_OK
    else:
        health_status, status_code = "unhealthy", status.HTTP_503_SERVICE_UNAVAILABLE

    logger.info("Health check", extra={"status": health_status, "services": services})

    response = HealthResponse(
        status=health_status,
        version=settings.APP_VERSION,
        services=services,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health(
    settings: Settings = Depends(get_settings),
    redaction: RedactionService = Depends(get_redaction_service),
    store: KeyValueStore = Depends(get_store),
) -> JSONResponse:
    return await _health(settings, redaction, store)


@router.get("/v1/health", response_model=HealthResponse, summary="Service health check (versioned)")
async def health_v1(
    settings: Settings = Depends(get_settings),
    redaction: RedactionService = Depends(get_redaction_service),
    store: KeyValueStore = Depends(get_store),
) -> JSONResponse:
    return await _health(settings, redaction, store)
