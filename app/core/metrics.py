"""
Prometheus metrics and health checks for the booking core
"""

import time
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Any

from prometheus_client import Counter, Histogram

from app.config import settings

logger = logging.getLogger(__name__)


BOOKING_OPERATIONS = Counter(
    "venuely_booking_operations_total",
    "Booking operations by kind and outcome",
    ["operation", "outcome"]
)
BOOKING_OPERATION_DURATION = Histogram(
    "venuely_booking_operation_duration_seconds",
    "Booking operation duration",
    ["operation"]
)
BOOKING_STATUS_CHANGES = Counter(
    "venuely_booking_status_changes_total",
    "Booking status transitions",
    ["from_status", "to_status"]
)
PAYMENT_INITIATIONS = Counter(
    "venuely_payment_initiations_total",
    "Payment initiations by gateway and outcome",
    ["gateway", "outcome"]
)
PAYMENT_VERIFICATIONS = Counter(
    "venuely_payment_verifications_total",
    "Payment verifications by gateway and outcome",
    ["gateway", "outcome"]
)
GATEWAY_REQUEST_DURATION = Histogram(
    "venuely_gateway_request_duration_seconds",
    "Outbound payment gateway request duration",
    ["gateway", "operation"]
)
SLOT_LOCK_WAIT = Histogram(
    "venuely_slot_lock_wait_seconds",
    "Time spent waiting for venue-day slot locks"
)


@asynccontextmanager
async def track_operation(operation: str):
    """Count and time a booking operation, labelling failures by error code"""
    start_time = time.perf_counter()
    try:
        yield
    except Exception as e:
        outcome = getattr(e, "code", type(e).__name__)
        BOOKING_OPERATIONS.labels(operation=operation, outcome=outcome).inc()
        raise
    else:
        BOOKING_OPERATIONS.labels(operation=operation, outcome="success").inc()
    finally:
        duration = time.perf_counter() - start_time
        BOOKING_OPERATION_DURATION.labels(operation=operation).observe(duration)
        if duration > 5.0:
            logger.warning(f"Slow {operation} operation: {duration:.2f}s")


def record_status_change(from_status, to_status):
    BOOKING_STATUS_CHANGES.labels(
        from_status=getattr(from_status, "value", str(from_status)),
        to_status=getattr(to_status, "value", str(to_status)),
    ).inc()


class HealthChecker:
    """Health checking for booking system components"""

    def __init__(self, redis_manager, db_check):
        self.redis_manager = redis_manager
        self.db_check = db_check

    async def check_redis_health(self) -> Dict[str, Any]:
        """Check Redis health"""
        try:
            start_time = time.time()
            client = await self.redis_manager.get_client()
            await client.ping()
            response_time = time.time() - start_time
            return {
                "status": "healthy",
                "response_time_ms": response_time * 1000,
                "error": None
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "response_time_ms": None,
                "error": str(e)
            }

    async def check_database_health(self) -> Dict[str, Any]:
        """Check database health"""
        start_time = time.time()
        healthy = await self.db_check()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": (time.time() - start_time) * 1000 if healthy else None,
            "error": None if healthy else "database unreachable"
        }

    async def get_system_health(self) -> Dict[str, Any]:
        """Get overall system health"""
        components = {"database": await self.check_database_health()}
        if settings.BOOKING_LOCK_BACKEND == "redis" or settings.TOKEN_REVOCATION_ENABLED:
            components["redis"] = await self.check_redis_health()

        statuses = [component["status"] for component in components.values()]
        if all(status == "healthy" for status in statuses):
            overall_status = "healthy"
        elif components["database"]["status"] == "healthy":
            overall_status = "degraded"
        else:
            overall_status = "unhealthy"

        return {
            "status": overall_status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": components
        }
