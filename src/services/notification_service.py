"""Outbound client for transactional notifications (order confirmation email)."""
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class NotificationClient:
    """Sends order notifications through the configured webhook."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        """Whether a notification endpoint is configured."""
        return bool(self._base_url)

    async def send_order_confirmation(self, order: dict[str, Any]) -> None:
        """
        Send the order confirmation.

        Raises:
            httpx.HTTPError: On transport or HTTP failures.
        """
        if not self.enabled:
            logger.debug("notifications_disabled order_number=%s", order.get("order_number"))
            return
        payload = {"template": "order_confirmation", "order": order}
        if self._http is not None:
            response = await self._http.post(f"{self._base_url}/order-confirmation", json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/order-confirmation", json=payload,
                )
        response.raise_for_status()
        logger.info("order_confirmation_sent order_number=%s", order.get("order_number"))
