"""Routes notification events to the channel configured for their base directory."""

import logging
from collections.abc import Mapping
from pathlib import Path

from courier.integrations.publishers import Publisher
from courier.schemas.transfer import NotificationEvent, TransferErrorEvent

logger = logging.getLogger(__name__)


def _key(directory: str | Path) -> str:
    return str(Path(directory))


class NotificationPublisher:
    """Thin adapter over a :class:`Publisher`.

    ``publish`` never raises: a missing channel mapping, a ``False`` from the
    publisher, and a publisher exception all come back as ``False``.
    """

    def __init__(
        self,
        publisher: Publisher,
        channels: Mapping[str, str],
        *,
        error_channel: str = "",
    ) -> None:
        self._publisher = publisher
        self._channels = {_key(directory): channel for directory, channel in channels.items()}
        self._error_channel = error_channel

    def resolve_channel(self, base_directory: str | Path) -> str | None:
        """Return the channel for a base directory, or None if unmapped."""
        return self._channels.get(_key(base_directory))

    async def publish(self, event: NotificationEvent) -> bool:
        """Send a file notification. Returns True only if the publisher accepted it."""
        channel = self.resolve_channel(event.base_directory)
        if channel is None:
            logger.error("No channel configured for directory: %s", event.base_directory)
            return False
        if not await self._send(channel, event, event.final_path):
            return False
        logger.info("File notification sent to channel %s: %s", channel, event.final_path)
        return True

    async def publish_error(self, event: TransferErrorEvent) -> bool:
        """Report a failed transfer on the error channel, if one is configured."""
        if not self._error_channel:
            return False
        sent = await self._send(self._error_channel, event, event.file_path)
        if sent:
            logger.info("Error notification sent to %s: %s", self._error_channel, event.file_path)
        return sent

    async def _send(self, channel: str, event, file_path: str) -> bool:
        try:
            sent = await self._publisher.send(channel, event)
        except Exception:
            logger.exception("Error sending notification to channel %s: %s", channel, file_path)
            return False
        if not sent:
            logger.error("Failed to send notification to channel %s: %s", channel, file_path)
        return bool(sent)
