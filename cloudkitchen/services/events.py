"""Best-effort broadcast of order events to the real-time client layer.

Publishing happens after the database commit. A sink that fails is logged and skipped;
nothing here can roll back or fail the write that triggered it.
"""
import logging
from collections import deque
from typing import Callable

import httpx
from fastapi.encoders import jsonable_encoder

from cloudkitchen.config import settings
from cloudkitchen.errors import TransientDependencyError
from cloudkitchen.util.clock import now_utc

logger = logging.getLogger(__name__)

ORDER_CREATED = "order-created"
ORDER_STATUS_CHANGED = "order-status-changed"
ORDER_ARCHIVED = "order-archived"
RATING_SUBMITTED = "rating-submitted"

Sink = Callable[[str, dict], None]


class MemorySink:
    """Keeps the last few events so clients can poll when push is unavailable."""

    def __init__(self, maxlen: int = 200):
        self.events: deque[dict] = deque(maxlen=maxlen)

    def __call__(self, name: str, payload: dict) -> None:
        self.events.append({"event": name, "at": now_utc().isoformat(), "payload": payload})


class WebhookSink:
    def __init__(self, url: str, timeout: float, transport: httpx.BaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def __call__(self, name: str, payload: dict) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(self.url, json={"event": name, "payload": payload})
                r.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransientDependencyError(f"webhook {self.url}: {exc}") from exc

    def __repr__(self):
        return f"WebhookSink({self.url!r})"


class EventBus:
    def __init__(self):
        self._sinks: list[Sink] = []

    def subscribe(self, sink: Sink) -> Sink:
        self._sinks.append(sink)
        return sink

    def unsubscribe(self, sink: Sink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def publish(self, name: str, payload: dict) -> int:
        """Returns how many sinks accepted the event."""
        body = jsonable_encoder(payload)
        delivered = 0
        for sink in list(self._sinks):
            try:
                sink(name, body)
                delivered += 1
            except TransientDependencyError as exc:
                logger.warning("broadcast %s failed: %s", name, exc)
            except Exception:
                logger.exception("broadcast %s via %r failed", name, sink)
        return delivered


bus = EventBus()
recent = bus.subscribe(MemorySink())
if settings.EVENTS_WEBHOOK_URL:
    bus.subscribe(WebhookSink(settings.EVENTS_WEBHOOK_URL, settings.EXTERNAL_TIMEOUT_S))
