from __future__ import annotations

import logging

import httpx

from shopper_auth.core.config import BASKET_MERGE_ENDPOINT, Settings
from shopper_auth.core.metrics import BASKET_MERGE_CALLS
from shopper_auth.models.session import HostSession

logger = logging.getLogger(__name__)

# Custom session attribute holding the guest's current basket id.
BASKET_ID_ATTRIBUTE = "basketId"


def has_active_basket(session: HostSession) -> bool:
    return bool(session.custom.get(BASKET_ID_ATTRIBUTE))


class BasketMergeClient:
    """Move a guest basket's items into the registered shopper's basket.

    Runs with the registered shopper's fresh access token, after the PKCE
    login and before the session bridge: SLAS already links the guest usid
    to the shopper, so the provider knows which guest basket to merge.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http

    async def merge(self, access_token: str) -> bool:
        try:
            response = await self._http.post(
                f"{self._settings.basket_api_base_url}{BASKET_MERGE_ENDPOINT}",
                params={
                    "siteId": self._settings.channel_id,
                    "createDestinationBasket": "true",
                    "productItemMergeMode": "sum_quantities",
                },
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            BASKET_MERGE_CALLS.labels(outcome="failure").inc()
            logger.error(
                "SLAS FLOW [basket_merge] merge request failed  error=%s",
                type(exc).__name__,
            )
            return False

        if not response.is_success:
            BASKET_MERGE_CALLS.labels(outcome="failure").inc()
            logger.error(
                "SLAS FLOW [basket_merge] merge rejected  status=%d",
                response.status_code,
            )
            return False

        BASKET_MERGE_CALLS.labels(outcome="success").inc()
        logger.info("SLAS FLOW [basket_merge] guest basket merged")
        return True
