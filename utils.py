import logging
import sys
import time
from functools import wraps
from typing import Any, Dict, List, Optional

import structlog
from docker.errors import DockerException
from prometheus_client import Counter, Gauge, Histogram, generate_latest
from requests.exceptions import RequestException

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("docker_harness")

# Prometheus metrics
CONTAINER_OPERATIONS = Counter(
    "harness_container_operations_total",
    "Container operations",
    ["operation", "status"],
)
OPERATION_LATENCY = Histogram(
    "harness_operation_duration_seconds",
    "Container operation latency",
    ["operation"],
)
ACTIVE_CONTAINERS = Gauge(
    "harness_active_containers", "Number of started containers not yet cleaned up"
)


def configure_logging(level: str = "INFO"):
    """Route structlog output through stdlib logging at the given level"""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


def log_container_operation(
    operation: str, container_id: str, status: str, details: Dict[str, Any] = None
):
    """Log container operations with structured logging"""
    logger.info(
        "Container operation",
        operation=operation,
        container_id=container_id,
        status=status,
        details=details or {},
    )
    CONTAINER_OPERATIONS.labels(operation=operation, status=status).inc()


def get_metrics():
    """Get Prometheus metrics"""
    return generate_latest()


# Error handling utilities
class HarnessException(Exception):
    """Base exception for docker-harness"""

    def __init__(self, message: str, error_code: str = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class EngineError(HarnessException):
    """The container engine rejected a request or could not be reached"""

    def __init__(self, message: str, operation: str = None):
        self.operation = operation
        super().__init__(message, "ENGINE_ERROR")


class EngineUnavailableError(EngineError):
    """No container engine could be contacted"""

    def __init__(self, message: str = "Docker is not available on this system"):
        super().__init__(message, "connect")
        self.error_code = "ENGINE_UNAVAILABLE"


class ContainerException(HarnessException):
    """Exception for container-related errors"""

    pass


class ContainerNotFoundError(ContainerException):
    def __init__(self, message: str):
        super().__init__(message, "CONTAINER_NOT_FOUND")


class ContainerStopError(ContainerException):
    def __init__(self, container_id: str):
        self.container_id = container_id
        super().__init__(f"container {container_id} did not stop", "DID_NOT_STOP")


class ContainerRemovedError(ContainerException):
    def __init__(self, container_id: str):
        self.container_id = container_id
        super().__init__(
            f"container {container_id or '<unstarted>'} was cleaned up; "
            "construct a new descriptor to start it again",
            "CONTAINER_REMOVED",
        )


class NameConflictError(ContainerException):
    def __init__(self, name: str, container_id: str):
        self.name = name
        self.container_id = container_id
        super().__init__(
            f"a container named {name} already exists ({container_id[:12]})",
            "NAME_CONFLICT",
        )


class VolumeRemovalError(ContainerException):
    """Raised when a volume could not be removed; earlier removals stand"""

    def __init__(self, volume: str, removed: List[str], leaked: List[str], error: str):
        self.volume = volume
        self.removed = removed
        self.leaked = leaked
        super().__init__(
            f"failed to remove volume {volume}: {error} "
            f"(removed={removed}, leaked={leaked})",
            "VOLUME_REMOVAL_FAILED",
        )


class ImagePullError(HarnessException):
    def __init__(self, reference: str, reason: Optional[str] = None):
        self.reference = reference
        message = f"image {reference} did not successfully pull"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "IMAGE_PULL_FAILED")


class TemplateNotFoundError(HarnessException):
    def __init__(self, message: str):
        super().__init__(message, "TEMPLATE_NOT_FOUND")


class WaitTimeoutError(HarnessException):
    def __init__(self, message: str, timeout: float):
        self.timeout = timeout
        super().__init__(message, "TIMEOUT")


def handle_engine_errors(operation: str):
    """Decorator wrapping docker SDK failures in EngineError and timing the call"""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.monotonic()
            try:
                return func(*args, **kwargs)
            except HarnessException:
                raise
            except (DockerException, RequestException) as e:
                logger.error("Engine error", operation=operation, error=str(e))
                CONTAINER_OPERATIONS.labels(operation=operation, status="error").inc()
                raise EngineError(f"{operation} failed: {e}", operation) from e
            finally:
                OPERATION_LATENCY.labels(operation=operation).observe(
                    time.monotonic() - started
                )

        return wrapper

    return decorator
