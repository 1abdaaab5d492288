"""Outbound client for the product search index."""
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class SearchIndexClient:
    """
    Pushes product documents to the search provider.

    Contract: index_product({id, ...fields}) -> None. Raises httpx.HTTPError on
    transport or HTTP failures; callers treat indexing as best effort.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http = http_client
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        """Whether a search index endpoint is configured."""
        return bool(self._base_url)

    async def index_product(self, product: dict[str, Any]) -> None:
        """Upsert one product document. Skipped (logged) when not configured."""
        if not self.enabled:
            logger.debug("search_index_disabled product_id=%s", product.get("id"))
            return
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        if self._http is not None:
            response = await self._http.post(
                f"{self._base_url}/products", json=product, headers=headers,
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/products", json=product, headers=headers,
                )
        response.raise_for_status()
        logger.info("search_index_synced product_id=%s", product.get("id"))
