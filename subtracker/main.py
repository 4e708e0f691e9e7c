from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from subtracker.api.errors import error_response
from subtracker.api.routes import router as api_router
from subtracker.core.config import get_settings
from subtracker.core.events import InternalEvent, event_bus
from subtracker.logging import configure_logging
from subtracker.middleware.correlation_id import CorrelationIdMiddleware
from subtracker.middleware.rate_limit import SubscriptionMutationRateLimitMiddleware
from subtracker.middleware.request_logging import RequestLoggingMiddleware
from subtracker.otel import configure_tracing, correlation_request_hook


configure_logging()
logger = logging.getLogger("subtracker.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_subscription_event(event: InternalEvent) -> None:
    level = logging.WARNING if event.name == "subscription.expired" else logging.INFO
    logger.log(
        level,
        "subscription_event",
        extra={
            "event_name": event.name,
            "subscription_id": event.payload.get("subscription_id"),
            "user_id": event.payload.get("user_id"),
            "status": event.payload.get("status"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe("subscription.*", _on_subscription_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title="Subscription Tracker API", version="0.1.0", lifespan=lifespan)
app.add_middleware(SubscriptionMutationRateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(
        request,
        status_code=exc.status_code,
        code="http_error",
        message=str(exc.detail),
        details=exc.detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        status_code=422,
        code="validation_error",
        message="request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


configure_tracing(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=correlation_request_hook)
