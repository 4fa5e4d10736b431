"""Resilient link to the Redis backend.

``BackendLink`` owns the single Redis client shared by every request
handler. It tracks connectivity as a :class:`LinkState` that only the link
itself writes, and recovers from link loss with a capped linear backoff::

    disconnected -> connecting -> ready
    ready -> disconnected                (link loss)
    disconnected -> connecting           (each retry attempt)
    * -> closed                          (retries exhausted or close())

Once ``closed`` the link makes no further attempts on its own; an operator
has to restart the process (or call :meth:`BackendLink.connect` again).
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from services.common import get_logger

from ..config import JournalSettings
from ..errors import BackendUnavailable

logger = get_logger(__name__)


class LinkState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


BACKEND_LATENCY = Histogram(
    "journal_backend_op_latency_seconds",
    "Latency of Redis operations issued by the journal service",
    ["op"],
    registry=REGISTRY,
)
BACKEND_OPS = Counter(
    "journal_backend_ops_total",
    "Redis operations issued by the journal service, by outcome",
    ["op", "outcome"],
    registry=REGISTRY,
)
BACKEND_STATE = Gauge(
    "journal_backend_state",
    "Current state of the Redis link (1 for the active state)",
    ["state"],
    registry=REGISTRY,
)

# Errors that mean the socket is gone rather than a bad command.
_LINK_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

ClientFactory = Callable[[], Redis]


def redis_client_factory(settings: JournalSettings) -> ClientFactory:
    """Return a factory building a Redis client from ``settings``.

    The client's own retry policy is disabled; recovery is driven by
    :class:`BackendLink` alone.
    """

    def factory() -> Redis:
        kwargs: dict[str, Any] = {
            "host": settings.redis_host,
            "port": settings.redis_port,
            "ssl": settings.redis_tls,
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "retry": Retry(NoBackoff(), 0),
        }
        if settings.redis_password:
            kwargs["password"] = settings.redis_password
        return Redis(**kwargs)

    return factory


class BackendLink:
    """Single logical connection to the key-value backend."""

    def __init__(
        self,
        client_factory: ClientFactory,
        *,
        max_retries: int = 10,
        base_delay: float = 0.1,
        max_delay: float = 3.0,
        name: str = "redis",
    ) -> None:
        self._client_factory = client_factory
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.name = name
        self._client: Optional[Redis] = None
        self._state = LinkState.DISCONNECTED
        self._attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._publish_state()

    @classmethod
    def from_settings(cls, settings: JournalSettings) -> "BackendLink":
        return cls(
            redis_client_factory(settings),
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            name=f"{settings.redis_host}:{settings.redis_port}",
        )

    # -- state -----------------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is LinkState.READY

    @property
    def attempts(self) -> int:
        """Reconnect attempts made since the link was last ready."""
        return self._attempts

    @property
    def reconnect_task(self) -> Optional[asyncio.Task]:
        return self._reconnect_task

    def _set_state(self, state: LinkState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.debug(
            "Redis link state change",
            extra={"link": self.name, "from_state": previous.value, "to_state": state.value},
        )
        self._publish_state()

    def _publish_state(self) -> None:
        for state in LinkState:
            BACKEND_STATE.labels(state=state.value).set(1 if state is self._state else 0)

    def backoff_delay(self, attempt: int) -> float:
        return min(attempt * self.base_delay, self.max_delay)

    # -- lifecycle -------------------------------------------------------

    async def connect(self) -> bool:
        """Open the link; never raises on backend failure.

        Returns ``True`` when the link is ready. On failure the link stays
        ``disconnected`` and the backoff task is scheduled so the caller can
        keep serving in degraded mode.
        """

        if self._state is LinkState.READY:
            return True
        await self._cancel_reconnect()
        if self._client is None or self._state is LinkState.CLOSED:
            if self._client is not None:
                await self._release(self._client)
            self._client = self._client_factory()
            self._set_state(LinkState.DISCONNECTED)
        self._attempts = 0
        logger.info("Redis client connecting", extra={"link": self.name})
        if await self._probe():
            logger.info("Redis connection established successfully", extra={"link": self.name})
            return True
        logger.error("Failed to connect to Redis", extra={"link": self.name})
        self._schedule_reconnect()
        return False

    async def close(self) -> None:
        """Stop reconnecting and release the client."""

        await self._cancel_reconnect()
        client, self._client = self._client, None
        self._set_state(LinkState.CLOSED)
        if client is not None:
            try:
                await client.aclose()
            except (RedisError, OSError) as exc:
                logger.warning("Error while closing Redis client", extra={"error": str(exc)})
            else:
                logger.info("Redis client disconnected gracefully", extra={"link": self.name})

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _probe(self) -> bool:
        self._set_state(LinkState.CONNECTING)
        try:
            ok = await self._client.ping()
        except (RedisError, OSError) as exc:
            logger.error("Redis client error", extra={"link": self.name, "error": str(exc)})
            ok = False
        if not ok:
            self._set_state(LinkState.DISCONNECTED)
            return False
        self._attempts = 0
        self._set_state(LinkState.READY)
        logger.info("Redis client connected and ready", extra={"link": self.name})
        return True

    def _on_link_lost(self, exc: BaseException) -> None:
        if self._state is not LinkState.READY:
            return
        logger.warning("Redis client disconnected", extra={"link": self.name, "error": str(exc)})
        self._set_state(LinkState.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())
            self._reconnect_task.add_done_callback(self._on_reconnect_done)

    def _on_reconnect_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        # client stays attached; close() or connect() releases it
        logger.error(
            "Redis reconnect task failed",
            exc_info=task.exception(),
            extra={"link": self.name, "retries": self._attempts},
        )
        self._set_state(LinkState.CLOSED)

    async def _reconnect_loop(self) -> None:
        for attempt in range(1, self.max_retries + 1):
            self._attempts = attempt
            delay = self.backoff_delay(attempt)
            logger.warning(
                "Attempting Redis reconnection",
                extra={"link": self.name, "retries": attempt, "delay": delay},
            )
            await asyncio.sleep(delay)
            if await self._probe():
                return
        logger.error(
            "Max Redis reconnection attempts reached",
            extra={"link": self.name, "retries": self._attempts},
        )
        client, self._client = self._client, None
        self._set_state(LinkState.CLOSED)
        if client is not None:
            await self._release(client)

    async def _release(self, client: Redis) -> None:
        try:
            await client.aclose()
        except (RedisError, OSError):
            logger.debug("Ignoring error closing abandoned Redis client")

    # -- primitives ------------------------------------------------------

    async def _call(
        self, op: str, key: str, func: Callable[[Redis], Awaitable[Any]], *, gated: bool = True
    ) -> Tuple[Any, float]:
        if self._client is None or self._state is LinkState.CLOSED or (
            gated and self._state is not LinkState.READY
        ):
            BACKEND_OPS.labels(op=op, outcome="unavailable").inc()
            raise BackendUnavailable(f"Redis link is {self._state.value}")
        start = time.perf_counter()
        try:
            result = await func(self._client)
        except (RedisError, OSError) as exc:
            BACKEND_LATENCY.labels(op=op).observe(time.perf_counter() - start)
            BACKEND_OPS.labels(op=op, outcome="error").inc()
            logger.error(f"Redis {op.upper()} error", extra={"key": key, "error": str(exc)})
            if isinstance(exc, _LINK_ERRORS):
                self._on_link_lost(exc)
            raise BackendUnavailable(str(exc)) from exc
        duration = time.perf_counter() - start
        BACKEND_LATENCY.labels(op=op).observe(duration)
        BACKEND_OPS.labels(op=op, outcome="ok").inc()
        return result, round(duration * 1000, 3)

    async def get(self, key: str) -> Optional[str]:
        value, duration_ms = await self._call("get", key, lambda r: r.get(key))
        logger.debug(
            "Redis GET operation",
            extra={"key": key, "duration_ms": duration_ms, "hit": value is not None},
        )
        return value

    async def set(self, key: str, value: str, ttl: int = 3600) -> None:
        _, duration_ms = await self._call("set", key, lambda r: r.set(key, value, ex=ttl))
        logger.debug(
            "Redis SET operation", extra={"key": key, "duration_ms": duration_ms, "ttl": ttl}
        )

    async def delete(self, key: str) -> None:
        _, duration_ms = await self._call("delete", key, lambda r: r.delete(key))
        logger.debug("Redis DELETE operation", extra={"key": key, "duration_ms": duration_ms})

    async def scan(self, pattern: str) -> List[str]:
        async def collect(r: Redis) -> List[str]:
            return [k async for k in r.scan_iter(match=pattern, count=200)]

        keys, duration_ms = await self._call("scan", pattern, collect)
        logger.debug(
            "Redis SCAN operation",
            extra={"key": pattern, "duration_ms": duration_ms, "count": len(keys)},
        )
        return keys

    async def ping(self) -> bool:
        """Round-trip probe; runs even while the link is not ready."""

        result, duration_ms = await self._call("ping", "", lambda r: r.ping(), gated=False)
        logger.debug("Redis PING operation", extra={"duration_ms": duration_ms})
        return bool(result)


__all__ = ["BackendLink", "LinkState", "redis_client_factory"]
