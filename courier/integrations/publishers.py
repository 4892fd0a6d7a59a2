"""Publishers that carry notification events to downstream consumers.

A publisher only has to implement ``send(channel, event) -> bool``. It may
raise; the notification adapter turns exceptions into a failed publish.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx
from httpx import RemoteProtocolError
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_RETRIES = 1
RETRY_DELAY = 1.0


@runtime_checkable
class Publisher(Protocol):
    """Anything that can deliver an event to a named channel."""

    async def send(self, channel: str, event: BaseModel) -> bool: ...


def _payload(event: BaseModel) -> dict:
    to_wire = getattr(event, "to_wire", None)
    if to_wire is not None:
        return to_wire()
    return event.model_dump(mode="json")


class JsonlPublisher:
    """Appends each event to ``<outbox_dir>/<channel>.jsonl``.

    Suited to local runs, where another process tails the outbox files.

    Usage::

        publisher = JsonlPublisher("/var/lib/courier/outbox")
        await publisher.send("orders-in", event)
    """

    def __init__(self, outbox_dir: str | Path) -> None:
        self._outbox_dir = Path(outbox_dir)
        self._outbox_dir.mkdir(parents=True, exist_ok=True)

    def channel_path(self, channel: str) -> Path:
        if not channel or "/" in channel or channel.startswith("."):
            raise ValueError(f"Invalid channel name: {channel!r}")
        return self._outbox_dir / f"{channel}.jsonl"

    async def send(self, channel: str, event: BaseModel) -> bool:
        path = self.channel_path(channel)
        with path.open("a") as f:
            f.write(json.dumps(_payload(event)) + "\n")
        logger.debug("Outbox %s: appended event", path.name)
        return True


class HttpPublisher:
    """Posts events as JSON to ``{base_url}/{channel}``.

    Any 2xx response counts as delivered.

    Usage::

        async with HttpPublisher(base_url, token) as publisher:
            await publisher.send("orders-in", event)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpPublisher":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, channel: str, event: BaseModel) -> bool:
        """POST the event. Retries once if the server drops the connection."""
        payload = _payload(event)
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._client.post(f"/{channel}", json=payload)
                break
            except RemoteProtocolError:
                if attempt == MAX_RETRIES:
                    raise
                logger.warning(
                    "Connection dropped (attempt %d/%d), retrying...",
                    attempt + 1,
                    MAX_RETRIES + 1,
                )
                await asyncio.sleep(RETRY_DELAY)

        if response.is_success:
            return True
        logger.error(
            "Publish to channel %s rejected: HTTP %d %s",
            channel,
            response.status_code,
            response.text[:200],
        )
        return False
