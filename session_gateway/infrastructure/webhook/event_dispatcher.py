"""
Event Dispatcher - Webhook delivery
===================================
Posts event envelopes to the configured webhook URL.

- ``publish`` records the event and schedules delivery on a background task;
  it never blocks and never raises.
- Delivery makes up to ``retry_attempts`` attempts, sleeping
  ``attempt * retry_delay_seconds`` between them, then drops the event.
- The most recent events are kept in a ring buffer for inspection, whatever
  the delivery outcome.
"""

import asyncio
import json
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import aiohttp

from ...core.logger import StructuredLogger, CustomJsonEncoder, get_logger
from ...domain.interfaces.events import IEventPublisher
from ...domain.models.events import EventEnvelope


class RecentEvents:
    """Bounded, newest-first record of published events."""

    def __init__(self, capacity: int = 10):
        self._events: deque = deque(maxlen=capacity)
        self._counter = 0

    def record(self, envelope: EventEnvelope) -> Dict[str, Any]:
        self._counter += 1
        item = {
            "id": f"evt_{self._counter}",
            "received_at": datetime.now(timezone.utc).isoformat(),
            "event": envelope.to_dict(),
        }
        self._events.appendleft(item)
        return item

    def list(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def clear(self) -> int:
        count = len(self._events)
        self._events.clear()
        return count

    def __len__(self) -> int:
        return len(self._events)


class EventDispatcher(IEventPublisher):
    """
    Webhook delivery with bounded retries.

    Disabled or without a URL, delivery is a no-op success and events are
    only recorded.
    """

    def __init__(self, settings: Any, logger: Optional[StructuredLogger] = None):
        """
        Args:
            settings: WebhookSettings
            logger: Optional logger override
        """
        self.settings = settings
        self.logger = logger or get_logger("event_dispatcher")
        self.recent_events = RecentEvents(settings.recent_events_capacity)

        self.session: Optional[aiohttp.ClientSession] = None
        self._pending: Set[asyncio.Task] = set()

        # Statistics
        self.delivered_count = 0
        self.dropped_count = 0

    @property
    def is_active(self) -> bool:
        return self.settings.is_active

    async def start(self) -> None:
        """Initialize HTTP session"""
        if self.is_active and not self.session:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "SessionGateway-Webhook/1.0"}
            )
        self.logger.info("event_dispatcher.started", {
            "active": self.is_active,
            "url": self.settings.url or None
        })

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Wait briefly for in-flight deliveries, cancel the rest and close the session"""
        pending = [task for task in self._pending if not task.done()]
        if pending:
            done, still_pending = await asyncio.wait(pending, timeout=drain_timeout)
            for task in still_pending:
                task.cancel()
            if still_pending:
                await asyncio.gather(*still_pending, return_exceptions=True)
                self.logger.warning("event_dispatcher.deliveries_cancelled", {"count": len(still_pending)})

        if self.session:
            await self.session.close()
            self.session = None
        self.logger.info("event_dispatcher.stopped", {
            "delivered": self.delivered_count,
            "dropped": self.dropped_count
        })

    def publish(self, envelope: EventEnvelope) -> None:
        try:
            self.recent_events.record(envelope)
            if not self.is_active:
                return
            task = asyncio.get_running_loop().create_task(self.deliver(envelope))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        except Exception as e:
            self.logger.error("event_dispatcher.publish_failed", {
                "session_id": envelope.session_id,
                "event_type": envelope.event_type.value,
                "error": str(e),
                "error_type": type(e).__name__
            })

    async def deliver(self, envelope: EventEnvelope) -> bool:
        """
        Deliver one envelope with retries.

        Returns:
            True if delivered (or delivery is disabled), False if dropped
        """
        if not self.is_active:
            return True

        body = json.dumps(envelope.to_dict(), cls=CustomJsonEncoder)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": envelope.event_type.value,
        }
        attempts = self.settings.retry_attempts

        for attempt in range(1, attempts + 1):
            try:
                status = await self._post(self.settings.url, body, headers)
                if status < 400:
                    self.delivered_count += 1
                    self.logger.debug("event_dispatcher.delivered", {
                        "session_id": envelope.session_id,
                        "event_type": envelope.event_type.value,
                        "attempt": attempt,
                        "status": status
                    })
                    return True
                error = f"HTTP {status}"
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                error = f"{type(e).__name__}: {e}"

            self.logger.warning("event_dispatcher.attempt_failed", {
                "session_id": envelope.session_id,
                "event_type": envelope.event_type.value,
                "attempt": attempt,
                "max_attempts": attempts,
                "error": error
            })
            if attempt < attempts:
                await asyncio.sleep(attempt * self.settings.retry_delay_seconds)

        self.dropped_count += 1
        self.logger.error("event_dispatcher.delivery_dropped", {
            "session_id": envelope.session_id,
            "event_type": envelope.event_type.value,
            "attempts": attempts
        })
        return False

    async def _post(self, url: str, body: str, headers: Dict[str, str]) -> int:
        if not self.session:
            await self.start()
        async with self.session.post(url, data=body, headers=headers) as response:
            return response.status

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active": self.is_active,
            "pending": sum(1 for task in self._pending if not task.done()),
            "delivered": self.delivered_count,
            "dropped": self.dropped_count,
            "recent": len(self.recent_events),
        }
