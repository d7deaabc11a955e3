import asyncio
from typing import Optional
from uuid import UUID

import requests

from core.config import settings
from core.logging import get_logger

logger = get_logger(__name__)


class StorefrontNotifier:
    """
    Tells the public storefront to drop its cached availability for a product.

    Fire-and-forget: failures are logged and never raised, so a committed
    stock change is never undone by a cache problem.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = settings.storefront_revalidate_url if url is None else url
        self.secret = settings.storefront_revalidate_secret if secret is None else secret
        self.timeout = settings.storefront_timeout if timeout is None else timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        return headers

    def _post(self, product_id: UUID, quantity: int) -> None:
        resp = self.session.post(
            self.url,
            json={"product_id": str(product_id), "quantity": int(quantity)},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()

    async def product_stock_changed(self, product_id: UUID, quantity: int) -> bool:
        """Returns True when the storefront acknowledged the invalidation."""
        if not self.enabled:
            return False
        try:
            await asyncio.to_thread(self._post, product_id, quantity)
        except requests.RequestException as e:
            logger.warning(
                "storefront_invalidation_failed",
                product_id=str(product_id),
                error=repr(e),
            )
            return False
        logger.debug("storefront_invalidated", product_id=str(product_id), quantity=quantity)
        return True
