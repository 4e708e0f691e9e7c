from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

subscription_operations_total = Counter(
    "subscription_operations_total",
    "Total subscription operations by outcome",
    ["operation", "outcome"],
)

subscription_renewal_derivations_total = Counter(
    "subscription_renewal_derivations_total",
    "Renewal dates resolved by the renewal policy",
    ["frequency", "source"],
)

subscription_expired_on_write_total = Counter(
    "subscription_expired_on_write_total",
    "Subscriptions flagged expired while being written",
)

upcoming_renewals_returned = Histogram(
    "upcoming_renewals_returned",
    "Number of upcoming renewals returned per query",
    ["scope"],
    buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500),
)

ownership_denied_total = Counter(
    "ownership_denied_total",
    "Total requests denied by subscription ownership checks",
    ["resource", "action"],
)

rate_limited_total = Counter(
    "subscription_rate_limited_total",
    "Mutating subscription requests rejected by the per-user rate limit",
    ["method"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return route_path
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_subscription_operation(operation: str, outcome: str = "ok") -> None:
    subscription_operations_total.labels(operation=operation, outcome=outcome).inc()


def observe_renewal_derivation(frequency: str | None, source: str) -> None:
    subscription_renewal_derivations_total.labels(frequency=frequency or "none", source=source).inc()


def observe_expired_on_write() -> None:
    subscription_expired_on_write_total.inc()


def observe_upcoming_renewals(scope: str, count: int) -> None:
    upcoming_renewals_returned.labels(scope=scope).observe(count)


def observe_ownership_denied(resource: str, action: str) -> None:
    ownership_denied_total.labels(resource=resource, action=action).inc()


def observe_rate_limited(method: str) -> None:
    rate_limited_total.labels(method=method).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
