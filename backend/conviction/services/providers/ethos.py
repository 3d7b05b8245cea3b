"""
Ethos Network API Client

External credibility score lookup, used only as a conviction score
multiplier input.
"""

from typing import Optional, Dict

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient


class EthosClient(BaseProviderClient):
    """Async client for the Ethos v2 API"""

    name = "ethos"

    def __init__(self, client_id: Optional[str] = None, **kwargs):
        self.client_id = client_id or settings.ETHOS_CLIENT_ID
        super().__init__(
            base_url=kwargs.pop("base_url", None) or settings.ETHOS_API_URL,
            **kwargs,
        )

    def _get_default_headers(self) -> Dict[str, str]:
        headers = super()._get_default_headers()
        headers["X-Ethos-Client"] = self.client_id
        return headers

    async def get_score_by_address(self, address: str) -> Optional[float]:
        """Credibility score for an address, or None when Ethos has none"""
        payload = await self._request("GET", "/score/address", params={"address": address})
        score = (payload or {}).get("score")
        if score is None:
            return None
        return float(score)
