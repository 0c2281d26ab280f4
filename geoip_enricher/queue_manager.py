"""
In-process event bus for the GeoIP worker
Bounded queue per named binding, one worker task per subscription, and an
NDJSON sink for output bindings
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from .config import QUEUE_MAX_DEPTH
from .schemas.event import Event
from .services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("queue_manager")

Handler = Callable[[Event, Dict[str, str]], Any]

class EventBus:
    """Named bounded queues carrying (event, properties) pairs"""

    def __init__(self, max_depth: int = QUEUE_MAX_DEPTH):
        self.max_depth = max_depth
        self.queues: Dict[str, asyncio.Queue] = {}
        self.workers: List[asyncio.Task] = []
        self._subscriptions: List[Tuple[str, Handler]] = []
        self._started = False
        self._rate_limit_tokens: Dict[str, Dict[str, float]] = {}

    def queue(self, binding: str) -> asyncio.Queue:
        """Queue for a binding, created on first use"""
        if binding not in self.queues:
            self.queues[binding] = asyncio.Queue(maxsize=self.max_depth)
        return self.queues[binding]

    def publish(self, binding: str, event: Event, properties: Optional[Dict[str, str]] = None) -> bool:
        """
        Put an event on a binding.
        Returns True if enqueued, False if the queue is full (event dropped).
        """
        q = self.queue(binding)
        try:
            q.put_nowait((event, properties or {}))
        except asyncio.QueueFull:
            prometheus_metrics.increment_queue_drops(binding)
            self._log_backpressure(binding)
            return False

        prometheus_metrics.set_queue_depth(binding, q.qsize())
        return True

    def subscribe(self, binding: str, handler: Handler):
        """Deliver every event on a binding to handler, one at a time"""
        self._subscriptions.append((binding, handler))
        if self._started:
            self._spawn(binding, handler)

    def _spawn(self, binding: str, handler: Handler):
        worker_id = len(self.workers)
        self.workers.append(asyncio.create_task(self._worker_loop(binding, handler, worker_id)))

    async def start(self):
        """Start a worker for every subscription"""
        if self._started:
            return
        self._started = True
        for binding, handler in self._subscriptions:
            self._spawn(binding, handler)

        logger.info("Event bus started", extra={
            "component": "queue_manager",
            "bindings": [b for b, _ in self._subscriptions],
            "max_depth": self.max_depth
        })

    async def stop(self):
        """Stop all workers"""
        for worker in self.workers:
            worker.cancel()

        if self.workers:
            await asyncio.gather(*self.workers, return_exceptions=True)

        self.workers.clear()
        self._started = False
        logger.info("Event bus stopped", extra={"component": "queue_manager"})

    async def join(self, binding: str):
        """Wait until every event published so far on a binding has been handled"""
        await self.queue(binding).join()

    async def _worker_loop(self, binding: str, handler: Handler, worker_id: int):
        """Worker loop that delivers events from one binding"""
        q = self.queue(binding)
        logger.info("Worker started", extra={
            "component": "queue_manager",
            "worker_id": worker_id,
            "binding": binding
        })

        while True:
            try:
                event, properties = await q.get()
                try:
                    handler(event, properties)
                except Exception as e:
                    prometheus_metrics.increment_handler_errors(binding)
                    logger.warning("Event handler failed", extra={
                        "component": "queue_manager",
                        "worker_id": worker_id,
                        "binding": binding,
                        "event_id": event.id,
                        "error": str(e)
                    })
                finally:
                    q.task_done()
                    prometheus_metrics.set_queue_depth(binding, q.qsize())

            except asyncio.CancelledError:
                logger.info("Worker cancelled", extra={
                    "component": "queue_manager",
                    "worker_id": worker_id,
                    "binding": binding
                })
                break

    def _log_backpressure(self, binding: str):
        """Log a full queue, first occurrence then every 100th or once a minute"""
        token = self._rate_limit_tokens.setdefault(binding, {"count": 0, "last_log": 0})
        token["count"] += 1

        should_log = (token["count"] == 1 or
                      token["count"] % 100 == 0 or
                      time.time() - token["last_log"] > 60)

        if should_log:
            logger.warning("Queue backpressure - queue full", extra={
                "component": "queue_manager",
                "event": "backpressure",
                "binding": binding,
                "max_depth": self.max_depth,
                "drop_count": token["count"]
            })
            token["last_log"] = time.time()

    def get_queue_stats(self) -> Dict[str, Dict[str, Any]]:
        """Current depth and saturation per binding"""
        return {
            binding: {
                "depth": q.qsize(),
                "max": self.max_depth,
                "saturation": q.qsize() / self.max_depth if self.max_depth > 0 else 0.0
            }
            for binding, q in self.queues.items()
        }

class EventProducer:
    """Publishes events on every configured output binding"""

    def __init__(self, bus: EventBus, outputs: List[str]):
        self.bus = bus
        self.outputs = list(outputs)

    def output(self, event: Event, properties: Dict[str, str]):
        for binding in self.outputs:
            self.bus.publish(binding, event, properties)

class NdjsonSink:
    """Appends each event on a binding to <directory>/<binding>.ndjson"""

    def __init__(self, binding: str, directory: str):
        self.binding = binding
        self.path = Path(directory) / f"{binding}.ndjson"

    def __call__(self, event: Event, properties: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = {
            "event": event.model_dump(mode="json", exclude_none=True),
            "properties": properties
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(line) + "\n")
