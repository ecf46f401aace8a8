"""
Live telemetry and alert monitor for one vehicle.

Seeds the current reading and the latest unread alert from a snapshot,
then follows the vehicle's telemetry and alert channels. State changes
go through a pure reducer and are written only by the monitor's own
consumer task.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Protocol

from pydantic import ValidationError

from freshroute.client.api_client import BackendClient
from freshroute.core.errors import FreshRouteError
from freshroute.core.events import Channel, RealtimeHub, alerts_topic, telemetry_topic
from freshroute.schemas.telemetry import (
    ChangeEvent,
    ChangeType,
    TelemetrySnapshot,
    TelemetryState,
)
from freshroute.services.normalization import normalize_alert, normalize_telemetry

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No telemetry data available"


class SnapshotSource(Protocol):
    """Loads the initial telemetry and unread alert for a vehicle."""

    async def load(self, vehicle_id: str) -> TelemetrySnapshot:
        ...


def reduce_telemetry(state: TelemetryState, event: ChangeEvent) -> TelemetryState:
    """
    Apply one pushed change to the telemetry state.

    A vehicle UPDATE replaces the reading wholesale. An alert INSERT
    replaces the active alert and asks the UI to surface it. Anything else
    leaves the state unchanged.
    """
    if event.table == "vehicles" and event.type == ChangeType.UPDATE:
        reading = normalize_telemetry(event.record)
        if reading is None:
            return state
        return state.model_copy(update={"telemetry": reading, "snapshot_error": None})

    if event.table == "alerts" and event.type == ChangeType.INSERT:
        alert = normalize_alert(event.record, state.vehicle_id)
        if alert is None:
            return state
        return state.model_copy(update={"active_alert": alert, "auto_surface": True})

    return state


def seed_state(vehicle_id: str, snapshot: TelemetrySnapshot) -> TelemetryState:
    return TelemetryState(
        vehicle_id=vehicle_id,
        telemetry=snapshot.telemetry,
        active_alert=snapshot.latest_unread_alert,
        auto_surface=False,
    )


class TelemetryMonitor:
    """
    Subscription to one vehicle's telemetry and alerts.

    Use as an async context manager: channels are acquired on enter and
    released on exit, whatever happened in between.
    """

    def __init__(
        self,
        vehicle_id: str,
        hub: RealtimeHub,
        source: Optional[SnapshotSource] = None,
    ) -> None:
        self.vehicle_id = vehicle_id
        self.hub = hub
        self.source = source
        self.state = TelemetryState(vehicle_id=vehicle_id)
        self._channels: List[Channel] = []
        self._tasks: List[asyncio.Task] = []
        self._watchers: List[asyncio.Queue] = []
        self.running = False

    async def __aenter__(self) -> "TelemetryMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Subscribe, then seed from the snapshot. Snapshot failures degrade to no data."""
        if self.running:
            return
        self.running = True

        try:
            for topic in (telemetry_topic(self.vehicle_id), alerts_topic(self.vehicle_id)):
                channel = await self.hub.subscribe(topic)
                self._channels.append(channel)
                self._tasks.append(asyncio.create_task(self._consume(channel)))
            await self._load_snapshot()
        except BaseException:
            await self.stop()
            raise

    async def _load_snapshot(self) -> None:
        if self.source is None:
            return
        try:
            snapshot = await self.source.load(self.vehicle_id)
        except (FreshRouteError, ValidationError) as e:
            logger.warning("Telemetry snapshot for vehicle %s failed: %s", self.vehicle_id, e)
            self._set_state(self.state.model_copy(update={"snapshot_error": NO_DATA_MESSAGE}))
            return

        seeded = seed_state(self.vehicle_id, snapshot)
        # Pushed events that arrived while the snapshot was loading are newer.
        if self.state.telemetry is not None:
            seeded = seeded.model_copy(update={"telemetry": self.state.telemetry})
        if self.state.active_alert is not None:
            seeded = seeded.model_copy(update={
                "active_alert": self.state.active_alert,
                "auto_surface": self.state.auto_surface,
            })
        self._set_state(seeded)

    async def _consume(self, channel: Channel) -> None:
        async for event in channel:
            try:
                new_state = reduce_telemetry(self.state, event)
            except ValidationError as e:
                logger.warning("Dropping malformed %s event on %s: %s", event.type.value, channel.topic, e)
                continue
            if new_state is not self.state:
                self._set_state(new_state)

    def _set_state(self, state: TelemetryState) -> None:
        self.state = state
        for queue in self._watchers:
            queue.put_nowait(state)

    async def watch(self) -> AsyncIterator[TelemetryState]:
        """
        Yield the current state, then every subsequent state.
        Ends when the monitor stops.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.append(queue)
        try:
            yield self.state
            while self.running:
                state = await queue.get()
                if state is None:
                    return
                yield state
        finally:
            if queue in self._watchers:
                self._watchers.remove(queue)

    async def stop(self) -> None:
        """Release both channels and stop the consumer tasks."""
        self.running = False
        for channel in self._channels:
            await channel.close()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._channels.clear()
        self._tasks.clear()
        for queue in self._watchers:
            queue.put_nowait(None)


class BackendSnapshotSource:
    """Snapshot loader backed by the marketplace backend client."""

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    async def load(self, vehicle_id: str) -> TelemetrySnapshot:
        return await asyncio.to_thread(self.client.get_telemetry_snapshot, vehicle_id)
