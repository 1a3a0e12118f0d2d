"""Live notification fan-out.

The hub keeps the set of open subscriber channels, each tagged with the user id and
role it was opened for, and pushes Server-Sent Event frames to the channels an
event targets. Delivery is best-effort per channel: a failed or slow write drops
that channel and never reaches the publisher. A heartbeat prunes dead channels.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from helpdesk.core.errors import ObservabilityError

logger = logging.getLogger(__name__)

Sink = Callable[[str], Awaitable[None]]

HEARTBEAT_FRAME = ": heartbeat\n\n"


@dataclass
class NotificationEvent:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    target_user_id: str | None = None
    target_role: str | None = None

    def to_frame(self) -> str:
        try:
            payload = json.dumps({"type": self.type, **self.data}, default=str)
        except (TypeError, ValueError) as e:
            raise ObservabilityError(f"Unserializable notification {self.type}: {e}") from e
        return f"data: {payload}\n\n"


@dataclass
class Channel:
    id: str
    user_id: str
    role: str
    sink: Sink
    on_close: Callable[[], None] | None = None
    last_heartbeat: float = field(default_factory=time.monotonic)


class Subscription:
    """Queue-backed channel for a streaming transport (SSE).

    ``send`` never blocks: a full queue means the consumer has stalled, which the
    hub treats as a failed write. Once the hub drops the channel, ``stream`` drains
    what is queued and ends.
    """

    def __init__(self, hub: "NotificationHub", channel_id: str, queue_size: int) -> None:
        self.hub = hub
        self.id = channel_id
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)

    async def send(self, message: str) -> None:
        self.queue.put_nowait(message)

    def end(self) -> None:
        # None marks the end of the stream; make room for it if the queue is full
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()

    async def stream(self) -> AsyncIterator[str]:
        try:
            while True:
                message = await self.queue.get()
                if message is None:
                    return
                yield message
        finally:
            await self.hub.unregister(self.id)

    async def close(self) -> None:
        await self.hub.unregister(self.id)


class NotificationHub:
    def __init__(
        self,
        heartbeat_interval: float = 30.0,
        send_timeout: float = 2.0,
        queue_size: int = 100,
    ) -> None:
        self.heartbeat_interval = heartbeat_interval
        self.send_timeout = send_timeout
        self.queue_size = queue_size
        self._channels: dict[str, Channel] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

    async def register(
        self,
        channel_id: str,
        user_id: str,
        role: str,
        sink: Sink,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        async with self._lock:
            self._channels[channel_id] = Channel(
                id=channel_id, user_id=user_id, role=role, sink=sink, on_close=on_close
            )
        logger.info("[SSE] Connection added: %s (%s)", channel_id, role)

    async def unregister(self, channel_id: str) -> bool:
        async with self._lock:
            removed = self._channels.pop(channel_id, None)
        if removed is None:
            return False
        logger.info("[SSE] Connection removed: %s", channel_id)
        if removed.on_close is not None:
            removed.on_close()
        return True

    async def subscribe(self, user_id: str, role: str) -> Subscription:
        channel_id = f"{user_id}-{uuid4().hex[:12]}"
        subscription = Subscription(self, channel_id, self.queue_size)
        await self.register(channel_id, user_id, role, subscription.send, on_close=subscription.end)
        welcome = NotificationEvent(type="connected", data={"connection_id": channel_id})
        await subscription.send(welcome.to_frame())
        return subscription

    async def _send(self, channel: Channel, message: str) -> bool:
        try:
            await asyncio.wait_for(channel.sink(message), timeout=self.send_timeout)
            return True
        except Exception as e:
            logger.warning("[SSE] Failed to send to %s: %r", channel.id, e)
            return False

    async def _deliver(self, channels: list[Channel], message: str) -> list[Channel]:
        """Write ``message`` to every channel concurrently; unregister the ones that fail."""
        if not channels:
            return []
        results = await asyncio.gather(*(self._send(c, message) for c in channels))
        delivered = []
        for channel, ok in zip(channels, results):
            if ok:
                delivered.append(channel)
            else:
                await self.unregister(channel.id)
        return delivered

    @staticmethod
    def _matches(channel: Channel, event: NotificationEvent) -> bool:
        if event.target_user_id and channel.user_id != event.target_user_id:
            return False
        if event.target_role and channel.role != event.target_role:
            return False
        return True

    async def broadcast(self, event: NotificationEvent) -> int:
        """Deliver ``event`` to matching channels; returns how many were reached."""
        message = event.to_frame()
        async with self._lock:
            targets = [c for c in self._channels.values() if self._matches(c, event)]
        delivered = await self._deliver(targets, message)
        logger.info("[SSE] Broadcast %s: sent to %d connections", event.type, len(delivered))
        return len(delivered)

    async def publish(self, event: NotificationEvent) -> int:
        """``broadcast`` for business operations: any failure is logged and reported as 0."""
        try:
            return await self.broadcast(event)
        except Exception as e:
            logger.exception("Failed to publish notification %s: %s", event.type, e)
            return 0

    async def heartbeat(self) -> int:
        async with self._lock:
            channels = list(self._channels.values())
        delivered = await self._deliver(channels, HEARTBEAT_FRAME)
        now = time.monotonic()
        for channel in delivered:
            channel.last_heartbeat = now
        if delivered:
            logger.debug("[SSE] Heartbeat sent to %d connections", len(delivered))
        return len(delivered)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.heartbeat()
            except Exception as e:
                logger.exception("[SSE] Heartbeat failed: %s", e)

    def start(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def connection_count(self) -> int:
        return len(self._channels)

    def count_by_role(self, role: str) -> int:
        return sum(1 for c in self._channels.values() if c.role == role)
