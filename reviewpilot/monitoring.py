# reviewpilot/monitoring.py
"""
Centralized monitoring: Prometheus metrics, structured JSON logging, optional Sentry.

Env vars:
- PROMETHEUS_ENABLED (default: true)
- SENTRY_DSN (optional)
- LOG_AS_JSON (default: true)
- LOG_LEVEL (default: INFO)
- ENVIRONMENT (default: development)
"""

import os
import logging
import time
from typing import Tuple

import sentry_sdk
from prometheus_client import (
    Counter, Histogram,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)
from pythonjsonlogger import jsonlogger

# --- ENV flags
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "true").lower() in ("1", "true", "yes")
SENTRY_DSN = os.getenv("SENTRY_DSN", None)
LOG_AS_JSON = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


# --- Logger setup
def setup_logger(name: str = "review-pilot", level: int = None) -> logging.Logger:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO")) if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        if LOG_AS_JSON:
            handler.setFormatter(jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s"
            ))
        else:
            handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s"
            ))
        logger.addHandler(handler)
    return logger


logger = setup_logger()

# --- Sentry (optional)
if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, environment=ENVIRONMENT)
    logger.info("Sentry initialized")


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "pilot_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "pilot_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

UPSTREAM_CALLS = Counter(
    "pilot_upstream_calls_total",
    "Outbound calls to third-party services",
    ["service", "outcome"],
)

UPSTREAM_LATENCY = Histogram(
    "pilot_upstream_latency_seconds",
    "Outbound call latency",
    ["service"],
)

CODE_EXTRACTION = Counter(
    "pilot_code_extraction_total",
    "Structured code extraction attempts",
    ["outcome"],
)

DEPLOYMENTS = Counter(
    "pilot_deployments_total",
    "Code deployments to target sites",
    ["code_type", "outcome"],
)

SITE_VERIFICATIONS = Counter(
    "pilot_site_verifications_total",
    "Site credential checks",
    ["outcome"],
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def observe_upstream(start_ts: float, service: str, outcome: str):
    try:
        UPSTREAM_LATENCY.labels(service=service).observe(time.time() - start_ts)
        UPSTREAM_CALLS.labels(service=service, outcome=outcome).inc()
    except Exception:
        pass


def inc_code_extraction(outcome: str):
    try:
        CODE_EXTRACTION.labels(outcome=outcome).inc()
    except Exception:
        pass


def inc_deployment(code_type: str, outcome: str):
    try:
        DEPLOYMENTS.labels(code_type=code_type, outcome=outcome).inc()
    except Exception:
        pass


def inc_site_verification(outcome: str):
    try:
        SITE_VERIFICATIONS.labels(outcome=outcome).inc()
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST
