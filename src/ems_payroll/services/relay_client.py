"""HTTP client that forwards notifications to the WebSocket relay.

Delivery is best effort. ``publish`` schedules the POST as a background task
and returns immediately; a failed or unreachable relay is logged and
dropped. The persisted notification row stays the source of truth.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

BROADCAST_PATH = "/broadcast-notification"
INTERNAL_KEY_HEADER = "X-Internal-Api-Key"


class RelayClient:
    """Fire-and-forget publisher for the relay's broadcast endpoint.

    Usage:
        relay = RelayClient("http://localhost:3001", api_key="...")
        relay.publish({"event": "admin_salary_corrected", "data": {...}})
        ...
        await relay.aclose()  # waits for in-flight posts
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None = None,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def enabled(self) -> bool:
        return self._base_url is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {INTERNAL_KEY_HEADER: self._api_key} if self._api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self._base_url or "",
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    def publish(self, payload: dict[str, Any]) -> asyncio.Task[bool] | None:
        """Schedule a broadcast. Returns the task, or None when no relay is configured."""
        if not self.enabled:
            logger.debug("Relay not configured, skipping broadcast of %s", payload.get("event"))
            return None

        task = asyncio.create_task(self.send(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def send(self, payload: dict[str, Any]) -> bool:
        """POST one payload to the relay. Never raises; returns whether it was accepted."""
        if not self.enabled:
            return False

        event = payload.get("event")
        try:
            response = await self._get_client().post(BROADCAST_PATH, json=payload)
        except httpx.HTTPError:
            logger.warning("Real-time delivery of %s failed", event, exc_info=True)
            return False
        except Exception:
            logger.exception("Unexpected error delivering %s to relay", event)
            return False

        if response.status_code >= 400:
            logger.error(
                "Relay rejected %s with HTTP %s: %s",
                event,
                response.status_code,
                response.text[:200],
            )
            return False

        logger.debug("Relay accepted %s", event)
        return True

    async def drain(self) -> None:
        """Wait for every scheduled broadcast to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain pending broadcasts and close the HTTP client."""
        await self.drain()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
