"""
Service Health Registry for Stan Chat.

Tracks availability and degradation of the two dependencies a chat turn
touches:
- OpenRouter (remote LLM, fact extraction and reply generation)
- Fact store (SQLite)

A degradation event is recorded whenever a chat turn falls back because a
dependency failed (empty extraction, templated reply). The summary is
surfaced on /health.

Usage:
    from api.services.service_health import record_degradation, mark_service_healthy

    record_degradation("openrouter", "reply", "templated_reply", "Connection refused")
    mark_service_healthy("openrouter")
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    """Service availability status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# Service name -> description
SERVICE_CONFIG = {
    "openrouter": "Remote LLM (OpenRouter chat completions)",
    "fact_store": "Per-user fact store (SQLite)",
}

# Events older than this are dropped
EVENT_RETENTION_HOURS = 24


@dataclass
class ServiceState:
    """Current state of a service."""
    status: ServiceStatus = ServiceStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_error: Optional[str] = None
    failure_count: int = 0
    consecutive_failures: int = 0
    fallback_name: Optional[str] = None


@dataclass
class DegradationEvent:
    """Record of a degradation event (fallback used)."""
    timestamp: datetime
    service: str
    operation: str
    fallback_used: str
    original_error: Optional[str] = None


class ServiceHealthRegistry:
    """
    Thread-safe registry of dependency health.

    Chat turns run concurrently, so every mutation happens under a lock.
    """

    def __init__(self):
        self._states: dict[str, ServiceState] = {name: ServiceState() for name in SERVICE_CONFIG}
        self._events: list[DegradationEvent] = []
        self._lock = threading.Lock()

    def _state(self, service: str) -> ServiceState:
        if service not in self._states:
            self._states[service] = ServiceState()
        return self._states[service]

    def mark_healthy(self, service: str) -> None:
        """Mark a service as healthy and reset its consecutive failures."""
        with self._lock:
            state = self._state(service)
            was_unhealthy = state.status in (ServiceStatus.UNAVAILABLE, ServiceStatus.DEGRADED)

            state.status = ServiceStatus.HEALTHY
            state.last_check = datetime.now(timezone.utc)
            state.consecutive_failures = 0
            state.fallback_name = None

        if was_unhealthy:
            logger.info(f"Service recovered: {service}")

    def mark_failed(self, service: str, error: str) -> None:
        """Mark a service as unavailable."""
        with self._lock:
            state = self._state(service)
            state.status = ServiceStatus.UNAVAILABLE
            state.last_check = datetime.now(timezone.utc)
            state.failure_count += 1
            state.consecutive_failures += 1
            state.last_error = error[:500] if error else None

            if state.consecutive_failures == 1:
                logger.warning(f"Service failed: {service} - {error[:100]}")

    def record_degradation(
        self,
        service: str,
        operation: str,
        fallback_used: str,
        original_error: Optional[str] = None,
    ) -> None:
        """Record that a fallback was used and mark the service degraded."""
        now = datetime.now(timezone.utc)
        event = DegradationEvent(
            timestamp=now,
            service=service,
            operation=operation,
            fallback_used=fallback_used,
            original_error=original_error[:200] if original_error else None,
        )

        with self._lock:
            cutoff = now - timedelta(hours=EVENT_RETENTION_HOURS)
            self._events = [e for e in self._events if e.timestamp > cutoff]
            self._events.append(event)

            state = self._state(service)
            state.status = ServiceStatus.DEGRADED
            state.last_check = now
            state.fallback_name = fallback_used
            if original_error:
                state.last_error = original_error[:500]

        logger.info(
            f"Degradation: {service}/{operation} -> {fallback_used}"
            + (f" (error: {original_error[:50]})" if original_error else "")
        )

    def get_state(self, service: str) -> Optional[ServiceState]:
        """Get current state of a service."""
        with self._lock:
            return self._states.get(service)

    def get_degradation_events(self, hours: int = EVENT_RETENTION_HOURS) -> list[DegradationEvent]:
        """Get degradation events from the last N hours."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        with self._lock:
            return [e for e in self._events if e.timestamp > cutoff]

    def get_summary(self) -> dict:
        """Summarise service health for the /health endpoint."""
        events = self.get_degradation_events()

        with self._lock:
            services = {
                name: {
                    "status": state.status.value,
                    "description": SERVICE_CONFIG.get(name, name),
                    "last_check": state.last_check.isoformat() if state.last_check else None,
                    "last_error": state.last_error,
                    "failure_count": state.failure_count,
                    "consecutive_failures": state.consecutive_failures,
                    "fallback_name": state.fallback_name,
                }
                for name, state in self._states.items()
            }
            degraded = any(
                s.status in (ServiceStatus.DEGRADED, ServiceStatus.UNAVAILABLE)
                for s in self._states.values()
            )

        return {
            "overall_status": "degraded" if degraded else "healthy",
            "services": services,
            "degradation_count_24h": len(events),
            "degradation_events": [
                {
                    "timestamp": e.timestamp.isoformat(),
                    "service": e.service,
                    "operation": e.operation,
                    "fallback": e.fallback_used,
                }
                for e in events[-20:]
            ],
        }


# Module-level singleton accessor
_registry: Optional[ServiceHealthRegistry] = None


def get_service_health() -> ServiceHealthRegistry:
    """Get the service health registry singleton."""
    global _registry
    if _registry is None:
        _registry = ServiceHealthRegistry()
    return _registry


def reset_service_health() -> None:
    """Reset the singleton (for testing)."""
    global _registry
    _registry = None


# Convenience functions for common operations

def record_degradation(
    service: str,
    operation: str,
    fallback_used: str,
    original_error: Optional[str] = None,
) -> None:
    """Record a degradation event (convenience wrapper)."""
    get_service_health().record_degradation(service, operation, fallback_used, original_error)


def mark_service_healthy(service: str) -> None:
    """Mark a service as healthy (convenience wrapper)."""
    get_service_health().mark_healthy(service)


def mark_service_failed(service: str, error: str) -> None:
    """Mark a service as failed (convenience wrapper)."""
    get_service_health().mark_failed(service, error)
