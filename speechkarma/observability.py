"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs
- Request/response logging middleware
- Metrics collection (statement mutations, augmentation outcomes, latency)
- Health check utilities

Configuration:
- SPEECHKARMA_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- SPEECHKARMA_LOG_FORMAT: json, text (default: json in production)
- SPEECHKARMA_PRODUCTION: Enable production mode

Usage:
    from speechkarma.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Statement created", statement_id=str(statement_id))
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_id_var: ContextVar[str] = ContextVar("caller_id", default="")

# Attributes every LogRecord carries; anything else is an extra field
_RESERVED_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("SPEECHKARMA_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("SPEECHKARMA_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("SPEECHKARMA_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-01-15T10:30:00.000000+00:00",
        "level": "INFO",
        "logger": "speechkarma.core.statements",
        "message": "Statement created",
        "request_id": "abc12345",
        "caller_id": "uuid-456",
        "statement_id": "uuid-789",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        caller_id = caller_id_var.get()
        if caller_id:
            log_data["caller_id"] = caller_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        extras = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            msg += " " + " ".join(f"{key}={value}" for key, value in extras.items())

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Statement deleted", statement_id=str(statement_id))
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})

        # Move non-standard kwargs to extra
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    Features:
    - Generates unique request ID for each request
    - Logs request/response with timing
    - Records the caller id (if the request carries a valid token)
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_token = request_id_var.set(request_id)

        from speechkarma.web.auth import get_caller_id
        caller_id = get_caller_id(request)
        caller_id_token = caller_id_var.set(str(caller_id) if caller_id else "")

        logger = get_logger("speechkarma.request")
        metrics = get_metrics()
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) if request.query_params else None,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            metrics.record_request(duration_ms, success=response.status_code < 500)

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            metrics.record_request(duration_ms, success=False)
            raise

        finally:
            request_id_var.reset(request_id_token)
            caller_id_var.reset(caller_id_token)


# ============================================================
# METRICS
# ============================================================

def _trim(samples: list, keep: int = 1000) -> list:
    return samples[-keep:] if len(samples) > keep else samples


@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Statement lifecycle counters
    statements_created: int = 0
    statements_updated: int = 0
    statements_deleted: int = 0

    # Augmentation counters
    augmentation_attempts: int = 0
    augmentation_successes: int = 0
    augmentation_failures: int = 0
    augmentation_skipped: int = 0

    # Request counters
    requests_total: int = 0
    requests_failed: int = 0

    # Histograms (simplified as lists)
    augmentation_latencies_ms: list = field(default_factory=list)
    request_latencies_ms: list = field(default_factory=list)

    _lock: Lock = field(default_factory=Lock, repr=False)

    def record_mutation(self, kind: str) -> None:
        """Record a successful create, update or delete."""
        with self._lock:
            if kind == "create":
                self.statements_created += 1
            elif kind == "update":
                self.statements_updated += 1
            elif kind == "delete":
                self.statements_deleted += 1

    def record_augmentation(self, outcome: str, latency_ms: Optional[float] = None) -> None:
        """
        Record one augmentation outcome.

        Args:
            outcome: "success", "failure" or "skipped"
            latency_ms: Time spent waiting on the summary client, if it was called
        """
        with self._lock:
            if outcome == "skipped":
                self.augmentation_skipped += 1
                return
            self.augmentation_attempts += 1
            if outcome == "success":
                self.augmentation_successes += 1
            else:
                self.augmentation_failures += 1
            if latency_ms is not None:
                self.augmentation_latencies_ms.append(latency_ms)
                self.augmentation_latencies_ms = _trim(self.augmentation_latencies_ms)

    def record_request(self, latency_ms: float, success: bool) -> None:
        """Record a request."""
        with self._lock:
            self.requests_total += 1
            if not success:
                self.requests_failed += 1
            self.request_latencies_ms.append(latency_ms)
            self.request_latencies_ms = _trim(self.request_latencies_ms)

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        return {
            "statements_created": self.statements_created,
            "statements_updated": self.statements_updated,
            "statements_deleted": self.statements_deleted,
            "augmentation_attempts": self.augmentation_attempts,
            "augmentation_successes": self.augmentation_successes,
            "augmentation_failures": self.augmentation_failures,
            "augmentation_skipped": self.augmentation_skipped,
            "requests_total": self.requests_total,
            "requests_failed": self.requests_failed,
            "augmentation_latency_p50_ms": percentile(self.augmentation_latencies_ms, 0.5),
            "augmentation_latency_p95_ms": percentile(self.augmentation_latencies_ms, 0.95),
            "request_latency_p50_ms": percentile(self.request_latencies_ms, 0.5),
            "request_latency_p95_ms": percentile(self.request_latencies_ms, 0.95),
        }


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(store=None, augmentation=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        store: StatementStore instance
        augmentation: AugmentationConfig, reported but never called

    Returns:
        HealthStatus with all check results
    """
    from speechkarma.db.store import StoreError

    start = time.perf_counter()
    checks: Dict[str, Dict[str, Any]] = {"liveness": {"status": "healthy"}}
    all_healthy = True

    if store is not None:
        try:
            store.ping()
            checks["statement_store"] = {
                "status": "healthy",
                "backend": type(store).__name__,
            }
        except StoreError as e:
            checks["statement_store"] = {
                "status": "unhealthy",
                "backend": type(store).__name__,
                "error": str(e),
            }
            all_healthy = False

    # Augmentation is best-effort, so it never makes the service unhealthy
    if augmentation is not None:
        checks["augmentation"] = {
            "status": "enabled" if augmentation.enabled else "disabled",
            "model": augmentation.model,
            "api_key_configured": bool(augmentation.api_key),
        }

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
