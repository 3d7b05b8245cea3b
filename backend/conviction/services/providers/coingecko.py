"""
CoinGecko API Client

Cross-chain historical prices by contract address.
"""

from typing import Optional, List, Dict
from loguru import logger

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.models import PricePoint


# CoinGecko asset platform ids
PLATFORMS = {
    "solana": "solana",
    "base": "base",
}


class CoinGeckoClient(BaseProviderClient):
    """Async client for the CoinGecko v3 API"""

    name = "coingecko"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(
            api_key=api_key if api_key is not None else settings.COINGECKO_API_KEY,
            base_url=kwargs.pop("base_url", None) or settings.COINGECKO_API_URL,
            **kwargs,
        )

    def _get_default_headers(self) -> Dict[str, str]:
        headers = super()._get_default_headers()
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def get_market_chart_range(
        self,
        platform: str,
        contract: str,
        time_from_ms: int,
        time_to_ms: int,
    ) -> List[PricePoint]:
        """
        Historical USD prices for a contract on a platform.

        Args:
            platform: Chain name (``solana`` or ``base``)
            contract: Token contract / mint address
            time_from_ms: Window start (ms)
            time_to_ms: Window end (ms)
        """
        platform_id = PLATFORMS.get(platform, platform)
        payload = await self._request(
            "GET",
            f"/coins/{platform_id}/contract/{contract}/market_chart/range",
            params={
                "vs_currency": "usd",
                "from": time_from_ms // 1000,
                "to": time_to_ms // 1000,
            },
        )

        points = []
        for row in (payload or {}).get("prices") or []:
            try:
                timestamp, price = row[0], row[1]
                points.append(PricePoint(timestamp=int(timestamp), price=float(price)))
            except (IndexError, TypeError, ValueError) as e:
                logger.debug(f"coingecko: skipping malformed price row {row}: {e}")
        return points
