"""Health and readiness signals derived from the backend link.

``health`` pays for a live round trip on every call and reports what the
backend looks like right now. ``ready`` only reads the link's cached state
and can lag behind the backend until the link notices a change.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel

from services.common import get_logger

from .errors import BackendUnavailable
from .storage import BackendLink

logger = get_logger(__name__)


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    checks: Dict[str, str]

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


class ReadyStatus(BaseModel):
    status: str
    reason: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.status == "ready"


class HealthReporter:
    def __init__(self, link: BackendLink) -> None:
        self.link = link

    async def health(self) -> HealthStatus:
        try:
            healthy = await self.link.ping()
        except BackendUnavailable as exc:
            logger.error("Redis health check failed", extra={"error": str(exc)})
            healthy = False
        return HealthStatus(
            status="healthy" if healthy else "degraded",
            timestamp=datetime.now(timezone.utc),
            checks={"redis": "connected" if healthy else "disconnected"},
        )

    def ready(self) -> ReadyStatus:
        if self.link.is_connected:
            return ReadyStatus(status="ready")
        return ReadyStatus(status="not ready", reason="Redis not connected")

    @staticmethod
    def live() -> Dict[str, str]:
        return {"status": "alive"}


__all__ = ["HealthReporter", "HealthStatus", "ReadyStatus"]
