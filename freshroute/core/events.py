"""
Realtime change bus for vehicle telemetry and alerts.

Provides a topic-keyed pub/sub mechanism that stands in for the managed
realtime backend: row changes are routed to the channel of the vehicle
they belong to, and every subscriber holds an explicit channel handle
that it must close.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from freshroute.schemas.telemetry import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)


def telemetry_topic(vehicle_id: str) -> str:
    return f"vehicle-telemetry:{vehicle_id}"


def alerts_topic(vehicle_id: str) -> str:
    return f"vehicle-alerts:{vehicle_id}"


def topic_for_change(change: ChangeEvent) -> Optional[str]:
    """
    Server-side filter: which vehicle channel a row change belongs to.

    UPDATE on vehicles goes to that vehicle's telemetry channel and INSERT
    on alerts goes to the alert channel of the alert's vehicle. Any other
    change is not delivered.
    """
    if change.table == "vehicles" and change.type == ChangeType.UPDATE:
        vehicle_id = change.record.get("id")
        return telemetry_topic(str(vehicle_id)) if vehicle_id is not None else None
    if change.table == "alerts" and change.type == ChangeType.INSERT:
        vehicle_id = change.record.get("vehicle_id")
        return alerts_topic(str(vehicle_id)) if vehicle_id is not None else None
    return None


class Channel:
    """
    A subscription to one topic.

    Iterate to receive events; call close() (or use `async with`) to
    release it. Iteration ends once the channel is closed.
    """

    _CLOSED = object()

    def __init__(self, hub: "RealtimeHub", topic: str) -> None:
        self.hub = hub
        self.topic = topic
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def __aenter__(self) -> "Channel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await self.queue.get()
            if item is self._CLOSED:
                return
            yield item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.hub._remove(self)
        self.queue.put_nowait(self._CLOSED)


class RealtimeHub:
    """
    Simple in-process pub/sub for database change events.

    Multiple listeners (telemetry monitors) can subscribe to a topic and
    receive changes published for that topic.
    """

    def __init__(self) -> None:
        self._channels: Dict[str, List[Channel]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str) -> Channel:
        """
        Open a channel on a topic.

        Args:
            topic: Topic name, see telemetry_topic / alerts_topic

        Returns:
            Channel handle; the caller owns it and must close it
        """
        channel = Channel(self, topic)
        async with self._lock:
            self._channels.setdefault(topic, []).append(channel)
        return channel

    async def _remove(self, channel: Channel) -> None:
        async with self._lock:
            channels = self._channels.get(channel.topic, [])
            if channel in channels:
                channels.remove(channel)
            if not channels:
                self._channels.pop(channel.topic, None)

    async def publish(self, topic: str, event: ChangeEvent) -> int:
        """
        Publish an event to all open channels on a topic.

        Returns:
            Number of channels the event was delivered to
        """
        async with self._lock:
            channels = list(self._channels.get(topic, []))
        for channel in channels:
            channel.queue.put_nowait(event)
        return len(channels)

    async def route_change(self, change: ChangeEvent) -> int:
        """Publish a row change on the vehicle channel it belongs to."""
        topic = topic_for_change(change)
        if topic is None:
            logger.debug("Ignoring %s on %s: no subscriber topic", change.type.value, change.table)
            return 0
        return await self.publish(topic, change)

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._channels.get(topic, []))
        return sum(len(c) for c in self._channels.values())


# Global singleton
realtime_hub = RealtimeHub()
