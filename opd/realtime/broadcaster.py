"""
Live queue fan-out.

:class:`QueueBroadcaster` is built once per process (see
``OpdConfig.ready``) and handed to the services that change a queue.
After a write commits they call :meth:`QueueBroadcaster.notify`; the
broadcaster recomputes the doctor's full active queue and sends it to the
channel-layer group ``queue.<doctor_id>``, where every connected
:class:`~opd.realtime.consumers.QueueStreamConsumer` forwards it to its
socket.

The :class:`ConnectionRegistry` is in-memory and per process.  It caps the
number of viewers per doctor and remembers when each one was last heard
from so idle sockets can be reaped.  Nothing in it is durable; clients
reconnect and receive a fresh snapshot after a restart.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import close_old_connections

from ..metrics import QUEUE_BROADCASTS
from ..services.queue import queue_snapshot

logger = logging.getLogger(__name__)


def group_name(doctor_id: int) -> str:
    return f"queue.{doctor_id}"


@dataclass
class Connection:
    connection_id: str
    doctor_id: int
    channel_name: str
    created_at: float
    last_activity: float = field(default=0.0)


class ConnectionRegistry:
    """Thread-safe map of doctor id -> live viewer connections."""

    def __init__(self, max_per_resource: int = 20, timeout: float = 30 * 60,
                 clock: Callable[[], float] = time.time):
        self.max_per_resource = max_per_resource
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._by_doctor: dict[int, dict[str, Connection]] = {}
        self._by_channel: dict[str, Connection] = {}

    def add(self, doctor_id: int, channel_name: str) -> Optional[Connection]:
        """Register a viewer; ``None`` when the doctor's cap is reached."""
        with self._lock:
            conns = self._by_doctor.setdefault(doctor_id, {})
            if len(conns) >= self.max_per_resource:
                logger.warning("Queue stream limit reached for doctor %s (%s)", doctor_id, self.max_per_resource)
                return None
            now = self._clock()
            conn = Connection(
                connection_id=f"{doctor_id}-{int(now * 1000)}-{secrets.token_hex(4)}",
                doctor_id=doctor_id,
                channel_name=channel_name,
                created_at=now,
                last_activity=now,
            )
            conns[channel_name] = conn
            self._by_channel[channel_name] = conn
        logger.info("Queue stream %s opened (doctor %s, %s open)", conn.connection_id, doctor_id, len(conns))
        return conn

    def remove(self, channel_name: str) -> Optional[Connection]:
        with self._lock:
            conn = self._by_channel.pop(channel_name, None)
            if conn is None:
                return None
            conns = self._by_doctor.get(conn.doctor_id, {})
            conns.pop(channel_name, None)
            if not conns:
                self._by_doctor.pop(conn.doctor_id, None)
        logger.info("Queue stream %s closed", conn.connection_id)
        return conn

    def touch(self, channel_name: str) -> None:
        with self._lock:
            conn = self._by_channel.get(channel_name)
            if conn is not None:
                conn.last_activity = self._clock()

    def evict_stale(self) -> list[Connection]:
        """Drop and return every connection idle for longer than ``timeout``."""
        cutoff = self._clock() - self.timeout
        with self._lock:
            stale = [c for c in self._by_channel.values() if c.last_activity < cutoff]
        for conn in stale:
            self.remove(conn.channel_name)
            logger.info("Queue stream %s evicted after %.0fs idle", conn.connection_id, self._clock() - conn.last_activity)
        return stale

    def channel_names(self) -> list[str]:
        with self._lock:
            return list(self._by_channel)

    def count(self, doctor_id: Optional[int] = None) -> int:
        with self._lock:
            if doctor_id is None:
                return len(self._by_channel)
            return len(self._by_doctor.get(doctor_id, {}))

    def stats(self) -> dict:
        now = self._clock()
        with self._lock:
            resources = [
                {
                    "resourceId": doctor_id,
                    "connectionCount": len(conns),
                    "connections": [
                        {
                            "id": c.connection_id,
                            "createdAt": c.created_at,
                            "lastActivity": c.last_activity,
                            "ageSeconds": int(now - c.created_at),
                        }
                        for c in conns.values()
                    ],
                }
                for doctor_id, conns in sorted(self._by_doctor.items())
            ]
            total = len(self._by_channel)
        return {
            "totalConnections": total,
            "resourceCount": len(resources),
            "maxConnectionsPerResource": self.max_per_resource,
            "connectionTimeout": self.timeout,
            "resources": resources,
        }


class QueueBroadcaster:
    def __init__(self, registry: ConnectionRegistry, *, background: bool = True, sweep_interval: float = 5 * 60,
                 heartbeat_interval: float = 30):
        self.registry = registry
        self.background = background
        self.sweep_interval = sweep_interval
        self.heartbeat_interval = heartbeat_interval
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls) -> "QueueBroadcaster":
        registry = ConnectionRegistry(
            max_per_resource=settings.QUEUE_MAX_CONNECTIONS_PER_DOCTOR,
            timeout=settings.QUEUE_CONNECTION_TIMEOUT,
        )
        return cls(
            registry,
            background=settings.QUEUE_BROADCAST_BACKGROUND,
            sweep_interval=settings.QUEUE_SWEEP_INTERVAL,
            heartbeat_interval=settings.QUEUE_HEARTBEAT_INTERVAL,
        )

    # -- publishing ------------------------------------------------------

    def notify(self, doctor_id: int) -> None:
        """Fire-and-forget push of the doctor's queue.

        Registered with ``transaction.on_commit`` by the services; never
        raises into the caller.
        """
        if self.background:
            self._get_executor().submit(self._publish_in_worker, doctor_id)
        else:
            self.publish(doctor_id)

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="queue-broadcast")
            return self._executor

    def _publish_in_worker(self, doctor_id: int) -> None:
        try:
            self.publish(doctor_id)
        finally:
            close_old_connections()

    def publish(self, doctor_id: int) -> bool:
        """Recompute and send one snapshot.  Failures are logged, not raised."""
        try:
            layer = get_channel_layer()
            if layer is None:
                return False
            snapshot = queue_snapshot(doctor_id)
            async_to_sync(layer.group_send)(group_name(doctor_id), {"type": "queue.snapshot", "snapshot": snapshot})
        except Exception:
            QUEUE_BROADCASTS.labels("error").inc()
            logger.exception("Queue broadcast for doctor %s failed", doctor_id)
            return False
        QUEUE_BROADCASTS.labels("sent").inc()
        return True

    # -- heartbeat and stale connection sweep -----------------------------

    def ensure_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop if it is not running."""
        loop = asyncio.get_running_loop()
        task = self._sweeper
        if task is not None and not task.done() and task.get_loop() is loop:
            return
        self._sweeper = loop.create_task(self._sweep_forever())

    def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is not None and not task.done():
            task.cancel()

    async def _sweep_forever(self) -> None:
        loop = asyncio.get_running_loop()
        last_sweep = loop.time()
        tick = min(self.heartbeat_interval, self.sweep_interval)
        while True:
            await asyncio.sleep(tick)
            await self.heartbeat()
            if loop.time() - last_sweep >= self.sweep_interval:
                last_sweep = loop.time()
                await self.sweep()

    async def heartbeat(self) -> int:
        """Ask every open stream to send a heartbeat frame.

        A stream that delivers it counts as active, so idle viewers that
        are still connected are not evicted.
        """
        channels = self.registry.channel_names()
        if not channels:
            return 0
        layer = get_channel_layer()
        for channel_name in channels:
            try:
                await layer.send(channel_name, {"type": "queue.heartbeat"})
            except Exception:
                logger.warning("Could not send heartbeat to queue stream %s", channel_name, exc_info=True)
        return len(channels)

    async def sweep(self) -> int:
        stale = self.registry.evict_stale()
        if not stale:
            return 0
        layer = get_channel_layer()
        for conn in stale:
            try:
                await layer.send(conn.channel_name, {"type": "queue.evict"})
            except Exception:
                logger.warning("Could not close stale queue stream %s", conn.connection_id, exc_info=True)
        return len(stale)

    def stats(self) -> dict:
        return self.registry.stats()
