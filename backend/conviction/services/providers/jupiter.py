"""
Jupiter API Client

Solana spot prices (price API) and token list lookups (tokens API).
"""

from typing import Optional, Dict

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.models import TokenMetadata


class JupiterClient(BaseProviderClient):
    """Async client for Jupiter price and token APIs"""

    name = "jupiter"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        self.tokens_url = kwargs.pop("tokens_url", None) or settings.JUPITER_TOKENS_URL
        super().__init__(
            api_key=api_key if api_key is not None else settings.JUPITER_API_KEY,
            base_url=kwargs.pop("base_url", None) or settings.JUPITER_PRICE_URL,
            **kwargs,
        )

    def _get_default_headers(self) -> Dict[str, str]:
        headers = super()._get_default_headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def get_price(self, mint: str) -> Optional[float]:
        """USD price for a mint, or None when Jupiter has no quote"""
        payload = await self._request("GET", "/price/v2", params={"ids": mint})
        entry = ((payload or {}).get("data") or {}).get(mint)
        if not entry or entry.get("price") in (None, ""):
            return None
        return float(entry["price"])

    async def get_token(self, mint: str) -> Optional[TokenMetadata]:
        """Token list entry for a mint"""
        payload = await self._request("GET", f"{self.tokens_url.rstrip('/')}/token/{mint}")
        if not payload or not payload.get("symbol"):
            return None

        return TokenMetadata(
            address=mint,
            symbol=payload["symbol"],
            name=payload.get("name") or payload["symbol"],
            decimals=payload.get("decimals"),
            logo_uri=payload.get("logoURI"),
        )
