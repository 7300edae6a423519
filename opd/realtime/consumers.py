import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.utils import timezone

from opd.apps import get_broadcaster
from opd.realtime.broadcaster import group_name as queue_group
from opd.services.queue import doctor_exists, queue_snapshot

logger = logging.getLogger(__name__)

CLOSE_BAD_ROUTE = 4001
CLOSE_UNKNOWN_DOCTOR = 4004
CLOSE_STALE = 4008
CLOSE_LIMIT_REACHED = 4029


async def _ws_error(ws, code: int, message: str, *, close: bool = False):
    """Send ``{"type": "error", "code", "message"}`` and optionally close with ``code``."""
    payload = {"type": "error", "code": code, "message": message}
    try:
        await ws.send(json.dumps(payload))
    finally:
        if close:
            await ws.close(code=code)


class QueueStreamConsumer(AsyncWebsocketConsumer):
    """Read-only live feed of one doctor's queue.

    Sends a full snapshot on connect and after every committed change.
    Clients may send ``{"type": "ping"}`` to keep the connection alive.
    Refusals are sent after the handshake so clients see the close code.
    """

    connection = None
    group_name = None
    doctor_id = None

    async def connect(self):
        self.broadcaster = get_broadcaster()
        try:
            self.doctor_id = int(self.scope["url_route"]["kwargs"]["doctor_id"])
        except (KeyError, TypeError, ValueError):
            await self.accept()
            await _ws_error(self, CLOSE_BAD_ROUTE, "invalid_doctor_id", close=True)
            return

        if not await database_sync_to_async(doctor_exists)(self.doctor_id):
            await self.accept()
            await _ws_error(self, CLOSE_UNKNOWN_DOCTOR, "doctor_not_found", close=True)
            return

        self.connection = self.broadcaster.registry.add(self.doctor_id, self.channel_name)
        if self.connection is None:
            await self.accept()
            await _ws_error(self, CLOSE_LIMIT_REACHED, "connection_limit_reached", close=True)
            return

        self.group_name = queue_group(self.doctor_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        snapshot = await database_sync_to_async(queue_snapshot)(self.doctor_id)
        await self.send(text_data=json.dumps(snapshot))
        self.broadcaster.registry.touch(self.channel_name)
        self.broadcaster.ensure_sweeper()

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
        if self.connection is not None:
            self.broadcaster.registry.remove(self.channel_name)
            self.connection = None
            if self.broadcaster.registry.count() == 0:
                self.broadcaster.stop_sweeper()

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return
        try:
            data = json.loads(text_data)
        except ValueError:
            logger.warning("Ignoring malformed message on queue stream for doctor %s", self.doctor_id)
            return

        if isinstance(data, dict) and data.get("type") == "ping":
            self.broadcaster.registry.touch(self.channel_name)
            await self.send(text_data=json.dumps({"type": "pong", "timestamp": timezone.now().isoformat()}))
            return
        logger.warning("Ignoring unsupported message on queue stream for doctor %s", self.doctor_id)

    # -- channel layer handlers -------------------------------------------

    async def _push(self, payload: dict) -> None:
        # A delivered frame counts as activity; a failed one drops the stream.
        try:
            await self.send(text_data=json.dumps(payload))
        except Exception:
            logger.warning("Dropping queue stream for doctor %s after failed push", self.doctor_id, exc_info=True)
            self.broadcaster.registry.remove(self.channel_name)
            self.connection = None
            await self.close()
            return
        self.broadcaster.registry.touch(self.channel_name)

    async def queue_snapshot(self, event):
        # event: {"type": "queue.snapshot", "snapshot": {...}}
        await self._push(event["snapshot"])

    async def queue_heartbeat(self, event):
        await self._push({"type": "heartbeat", "timestamp": timezone.now().isoformat()})

    async def queue_evict(self, event):
        self.connection = None
        await self.close(code=CLOSE_STALE)
