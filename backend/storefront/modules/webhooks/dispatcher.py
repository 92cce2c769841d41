"""
Outbound webhook dispatcher.

Posts catalog events to every URL registered for the event. Delivery is
best effort: failures are logged and never propagate to the caller.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
from loguru import logger

from storefront.models.webhook import WebhookEventType


class WebhookDispatcher:
    """
    Fan-out of events to registered webhook URLs.

    Usage:
        dispatcher = WebhookDispatcher(timeout=5.0)
        delivered = await dispatcher.dispatch(urls, WebhookEventType.PRODUCT_CREATED, data)
        await dispatcher.close()
    """

    def __init__(
        self,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def _deliver(self, url: str, body: dict[str, Any]) -> bool:
        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Webhook {body['event']} to {url} failed: HTTP {e.response.status_code}"
            )
        except httpx.RequestError as e:
            logger.warning(f"Webhook {body['event']} to {url} failed: {e}")
        return False

    async def dispatch(
        self,
        urls: list[str],
        event_type: WebhookEventType,
        data: dict[str, Any],
    ) -> int:
        """
        Send an event to all URLs concurrently.

        Returns:
            Number of successful deliveries
        """
        if not urls:
            return 0

        body = {
            "event": event_type.value,
            "data": data,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        results = await asyncio.gather(*(self._deliver(url, body) for url in urls))
        delivered = sum(results)

        logger.info(f"Webhook {event_type.value} delivered to {delivered}/{len(urls)} URLs")
        return delivered
