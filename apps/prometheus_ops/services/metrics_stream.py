import asyncio
import contextlib
import logging
import random
from typing import Any, Callable, Dict, Optional

from ..config import settings
from ..models.metric_models import utcnow
from .websocket_hub import WebSocketHub

logger = logging.getLogger("prometheus_ops.metrics_stream")

METRICS_TOPIC = "metrics"


class MetricsStream:
    """
    Periodic synthetic metrics pushed to the ``metrics`` WebSocket topic.

    start() spawns a single asyncio task; stop() cancels it and waits for it
    to finish. tick() emits exactly one frame and is what the loop calls, so
    tests can drive the stream without timers.
    """

    def __init__(
        self,
        hub: WebSocketHub,
        interval_seconds: float = settings.METRICS_STREAM_INTERVAL_SECONDS,
        rng: Optional[random.Random] = None,
        generator: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        self.hub = hub
        self.interval_seconds = interval_seconds
        self._rng = rng or random.Random()
        self._generator = generator or self.generate_metrics
        self._task: Optional[asyncio.Task] = None
        self.frames_sent = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            await self.stop()
        logger.info("Starting metrics stream (interval=%.1fs)", self.interval_seconds)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        logger.info("Stopping metrics stream")
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Metrics stream tick failed")
            await asyncio.sleep(self.interval_seconds)

    async def tick(self) -> Dict[str, Any]:
        metrics = self._generator()
        await self.hub.broadcast(METRICS_TOPIC, metrics)
        self.frames_sent += 1
        return metrics

    # ------------------------------------------------------------------
    # Synthetic payload
    # ------------------------------------------------------------------

    def generate_metrics(self) -> Dict[str, Any]:
        rng = self._rng
        return {
            "timestamp": utcnow().isoformat(),
            "system": {
                "cpu": rng.random() * 100,
                "memory": rng.random() * 100,
                "activeConnections": self.hub.client_count,
            },
            "ai": {
                "requestsPerSecond": rng.randrange(50),
                "successRate": 85 + rng.random() * 15,
                "averageLatency": 50 + rng.random() * 100,
            },
        }
