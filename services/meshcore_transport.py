"""MeshCore companion-radio transport: channel lookup, sending, inbound logging."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from meshcore import EventType, MeshCore

from constants import MESHCORE_BAUDRATE, MESHCORE_MAX_CHANNELS

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The radio could not be reached or rejected a command."""


@dataclass(frozen=True)
class Channel:
    index: int
    name: str


class MeshTransport:
    """Thin async wrapper over a serial-attached MeshCore node."""

    def __init__(
        self,
        port: str,
        *,
        baudrate: int = MESHCORE_BAUDRATE,
        max_channels: int = MESHCORE_MAX_CHANNELS,
    ) -> None:
        self.port = port
        self._baudrate = baudrate
        self._max_channels = max_channels
        self._meshcore: Optional[MeshCore] = None

    @property
    def connected(self) -> bool:
        return self._meshcore is not None

    async def connect(self) -> None:
        try:
            meshcore = await MeshCore.create_serial(self.port, self._baudrate)
        except (OSError, ConnectionError) as exc:
            raise TransportError(f"Could not open {self.port}: {exc}") from exc
        if meshcore is None:
            raise TransportError(f"No MeshCore node answered on {self.port}")
        self._meshcore = meshcore
        logger.info("Connected to %s", self.port)

    async def find_channel_by_name(self, name: str) -> Optional[Channel]:
        meshcore = self._require_connection()
        for index in range(self._max_channels):
            event = await meshcore.commands.get_channel(index)
            if event.type == EventType.ERROR:
                break
            channel_name = (event.payload or {}).get('channel_name', '')
            if channel_name == name:
                return Channel(index=index, name=channel_name)
        return None

    async def send_channel_text_message(self, channel_index: int, text: str) -> None:
        meshcore = self._require_connection()
        event = await meshcore.commands.send_chan_msg(channel_index, text)
        if event.type == EventType.ERROR:
            raise TransportError(f"Channel {channel_index} rejected message: {event.payload}")

    async def start_message_logging(self) -> None:
        """Drains waiting inbound messages as they arrive and logs them."""
        meshcore = self._require_connection()
        meshcore.subscribe(EventType.CONTACT_MSG_RECV, self._log_contact_message)
        meshcore.subscribe(EventType.CHANNEL_MSG_RECV, self._log_channel_message)
        await meshcore.start_auto_message_fetching()

    async def close(self) -> None:
        if self._meshcore is None:
            return
        meshcore, self._meshcore = self._meshcore, None
        await meshcore.disconnect()

    async def _log_contact_message(self, event) -> None:
        logger.info("Received contact message %s", event.payload)

    async def _log_channel_message(self, event) -> None:
        logger.info("Received channel message %s", event.payload)

    def _require_connection(self) -> MeshCore:
        if self._meshcore is None:
            raise TransportError("Transport is not connected")
        return self._meshcore
