"""
DexScreener API Client

Keyless DEX pair data. Used as the generic fallback for metadata, current
price and a single "now" price point on both chains.
"""

import time
from typing import Optional, List, Dict, Any

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.models import PricePoint, TokenMetadata, TokenPrice


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class DexScreenerClient(BaseProviderClient):
    """Async client for the DexScreener public API"""

    name = "dexscreener"

    def __init__(self, **kwargs):
        super().__init__(
            base_url=kwargs.pop("base_url", None) or settings.DEXSCREENER_API_URL,
            **kwargs,
        )

    async def get_token_pairs(self, token_address: str) -> List[Dict[str, Any]]:
        """All pairs that include the token"""
        payload = await self._request("GET", f"/tokens/{token_address}")
        return list((payload or {}).get("pairs") or [])

    async def get_best_pair(self, token_address: str) -> Optional[Dict[str, Any]]:
        """
        Most liquid pair where the token is the base token.

        Falls back to the first pair when the token only ever appears as
        the quote side.
        """
        pairs = await self.get_token_pairs(token_address)
        if not pairs:
            return None

        address = token_address.lower()
        as_base = [
            p for p in pairs
            if str((p.get("baseToken") or {}).get("address", "")).lower() == address
        ]
        if not as_base:
            return pairs[0]

        return max(as_base, key=lambda p: _to_float((p.get("liquidity") or {}).get("usd")))

    # ========================================================================
    # DERIVED VIEWS
    # ========================================================================

    async def get_token_metadata(self, token_address: str) -> Optional[TokenMetadata]:
        pair = await self.get_best_pair(token_address)
        if not pair:
            return None

        base = pair.get("baseToken") or {}
        quote = pair.get("quoteToken") or {}
        side = base if str(base.get("address", "")).lower() == token_address.lower() else quote

        return TokenMetadata(
            address=token_address,
            symbol=side.get("symbol") or "UNKNOWN",
            name=side.get("name") or "Unknown Token",
            logo_uri=(pair.get("info") or {}).get("imageUrl"),
        )

    async def get_price(self, token_address: str) -> Optional[TokenPrice]:
        pair = await self.get_best_pair(token_address)
        if not pair:
            return None

        base = pair.get("baseToken") or {}
        if str(base.get("address", "")).lower() != token_address.lower():
            # priceUsd is quoted for the base token only
            return None

        return TokenPrice(
            current_price=_to_float(pair.get("priceUsd")),
            price_change_24h=_to_float((pair.get("priceChange") or {}).get("h24")),
            volume_24h=_to_float((pair.get("volume") or {}).get("h24")),
            market_cap=_to_float(pair.get("marketCap")) or None,
            last_updated=int(time.time() * 1000),
        )

    async def get_current_price_point(self, token_address: str) -> List[PricePoint]:
        """A single "now" sample, the last-resort price history"""
        price = await self.get_price(token_address)
        if not price or price.current_price <= 0:
            return []

        return [PricePoint(
            timestamp=price.last_updated or int(time.time() * 1000),
            price=price.current_price,
            volume=price.volume_24h,
        )]
