"""
FastAPI application entry point for the PII Redaction Proxy.
"""

from typing import Optional

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from pii_proxy.api.error_handlers import EXCEPTION_HANDLERS
from pii_proxy.api.middleware import RequestTracingMiddleware
from pii_proxy.api.routes import router
from pii_proxy.config import Settings, settings
from pii_proxy.inference.base_client import BaseTokenClassifier
from pii_proxy.inference.exceptions import ClassifierUnavailableError
from pii_proxy.inference.http_classifier import HttpTokenClassifier
from pii_proxy.inference.model_cache import ClassifierCache
from pii_proxy.inference.transformers_classifier import TransformersTokenClassifier
from pii_proxy.logging_config import configure_logging
from pii_proxy.models.enums import FailStrategy
from pii_proxy.models.session_models import RiskConfig
from pii_proxy.persistence.redis_client import RedisClient
from pii_proxy.persistence.store import KeyValueStore, create_store
from pii_proxy.pii.redactor import RedactionOptions, RedactionService
from pii_proxy.proxy.service import ProxyService
from pii_proxy.proxy.upstream_client import UpstreamClient
from pii_proxy.session.risk_engine import SessionService
from pii_proxy.session.session_store import SessionStore

# Configure structured logging before any other imports
configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
logger = structlog.get_logger(__name__)


async def build_classifier(app_settings: Settings) -> BaseTokenClassifier:
    """Classifier for the configured backend; a failed model load is logged, not fatal."""
    if app_settings.CLASSIFIER_BACKEND == "http":
        return HttpTokenClassifier(
            base_url=app_settings.CLASSIFIER_URL,
            timeout=app_settings.CLASSIFIER_TIMEOUT,
        )

    classifier = TransformersTokenClassifier(app_settings.MODEL_ID)
    try:
        await classifier.load()
    except ClassifierUnavailableError as e:
        # Health reports the classifier as unavailable and redaction answers 502
        logger.error("Starting without a loaded model", error=e.message)
    return classifier


def create_app(
    app_settings: Settings = settings,
    classifier: Optional[BaseTokenClassifier] = None,
    store: Optional[KeyValueStore] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to wire components with
        classifier: Prebuilt classifier (default: built from CLASSIFIER_BACKEND)
        store: Prebuilt store (default: Redis if REDIS_URL, else in-memory)
        upstream_transport: Custom httpx transport for the upstream client

    Returns:
        FastAPI app; components are constructed on startup
    """
    app = FastAPI(
        title="PII Redaction Proxy",
        description="OpenAI-compatible proxy that redacts PII in both directions",
        version=app_settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Request tracing middleware (must be first for request_id in all logs)
    app.add_middleware(RequestTracingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exc_class, handler)

    app.include_router(router, tags=["proxy"])

    @app.on_event("startup")
    async def startup():
        """Construct classifier, store and services."""
        logger.info(
            "Application startup",
            version=app_settings.APP_VERSION,
            environment=app_settings.ENVIRONMENT,
            upstream_url=app_settings.UPSTREAM_URL,
            classifier_backend=app_settings.CLASSIFIER_BACKEND,
            fail_strategy=app_settings.FAIL_STRATEGY,
        )

        app.state.classifier = classifier if classifier is not None else await build_classifier(app_settings)
        app.state.store = store if store is not None else create_store(app_settings)
        app.state.debug_classifiers = ClassifierCache(max_entries=app_settings.DEBUG_MODEL_CACHE_SIZE)

        app.state.redaction_service = RedactionService(
            app.state.classifier,
            RedactionOptions(
                use_deterministic_replacement=app_settings.USE_DETERMINISTIC_REPLACEMENT,
                salt=app_settings.SALT,
                timeout_ms=app_settings.INFERENCE_TIMEOUT_MS,
                fail_strategy=FailStrategy(app_settings.FAIL_STRATEGY),
            ),
        )
        app.state.session_service = SessionService(
            SessionStore(app.state.store),
            RiskConfig(
                threshold=app_settings.RISK_THRESHOLD,
                window_ms=app_settings.RISK_WINDOW_MS,
            ),
        )
        app.state.upstream = UpstreamClient(
            base_url=app_settings.UPSTREAM_URL,
            api_key=app_settings.UPSTREAM_API_KEY,
            timeout=app_settings.UPSTREAM_TIMEOUT,
            transport=upstream_transport,
        )
        app.state.proxy_service = ProxyService(
            redaction=app.state.redaction_service,
            sessions=app.state.session_service,
            upstream=app.state.upstream,
            store=app.state.store,
            rate_limit_max=app_settings.RATE_LIMIT_MAX,
            rate_limit_window_ms=app_settings.RATE_LIMIT_WINDOW_MS,
            stream_max_tokens=app_settings.STREAM_MAX_TOKENS,
            stream_max_delay_ms=app_settings.STREAM_MAX_DELAY_MS,
        )

        if not await app.state.store.ping():
            logger.error("Key-value store unreachable at startup")

        logger.info("Application startup complete")

    @app.on_event("shutdown")
    async def shutdown():
        """Close upstream connections, store and classifier."""
        logger.info("Application shutdown")
        await app.state.upstream.close()
        await app.state.store.close()
        await RedisClient.close_async_pool()
        await app.state.classifier.close()
        await app.state.debug_classifiers.close()
        logger.info("Application shutdown complete")

    # Prometheus metrics instrumentation
    if app_settings.PROMETHEUS_ENABLED:
        Instrumentator().instrument(app).expose(app)

    @app.get("/")
    async def root():
        """Root endpoint with API documentation links."""
        return {
            "service": "PII Redaction Proxy",
            "version": app_settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
            "chat_completions": "/v1/chat/completions",
            "metrics": "/metrics" if app_settings.PROMETHEUS_ENABLED else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pii_proxy.main:app",
        host=settings.HOST,
        port=settings.PORT,
    )
