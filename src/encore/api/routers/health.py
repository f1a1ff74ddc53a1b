"""Health check endpoints.

- /health/live  - Liveness probe (OK whenever the process is serving)
- /health/ready - Readiness probe (database, Redis and the event bus)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from encore.cache.redis import RedisCache, get_redis
from encore.persistence.db import health_check as db_health_check

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single dependency."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def _check(name: str, probe: Callable[[], Awaitable[bool]]) -> ComponentHealth:
    start = time.monotonic()
    message: str | None = None
    try:
        healthy = await asyncio.wait_for(probe(), timeout=CHECK_TIMEOUT)
        if not healthy:
            message = f"{name} check failed"
    except asyncio.TimeoutError:
        healthy, message = False, f"{name} check timed out"
    except Exception as e:
        healthy, message = False, str(e)
    return ComponentHealth(
        name=name,
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
        message=message,
    )


async def _redis_probe() -> bool:
    return await RedisCache(await get_redis()).health_check()


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe. Returns 503 when any dependency is unhealthy."""
    checks = [_check("database", db_health_check), _check("redis", _redis_probe)]
    bus = getattr(request.app.state, "bus", None)
    if bus is not None:
        checks.append(_check("event_bus", bus.health_check))

    components = await asyncio.gather(*checks)
    healthy = all(c.status == HealthStatus.HEALTHY for c in components)
    overall = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
    return JSONResponse(
        content={"status": overall.value, "components": [c.to_dict() for c in components]},
        status_code=200 if healthy else 503,
    )
