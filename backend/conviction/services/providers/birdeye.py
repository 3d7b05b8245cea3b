"""
Birdeye API Client

Wallet swap history, token overview, current price and price history for
Solana and Base. The chain is selected with the ``x-chain`` header.

API Documentation: https://docs.birdeye.so
"""

from typing import Optional, List, Dict, Any
from loguru import logger

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.models import PricePoint, TokenMetadata, TokenPrice


class BirdeyeClient(BaseProviderClient):
    """Async client for the Birdeye public API"""

    name = "birdeye"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(
            api_key=api_key if api_key is not None else settings.BIRDEYE_API_KEY,
            base_url=kwargs.pop("base_url", None) or settings.BIRDEYE_API_URL,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _chain_headers(self, chain: str) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key or "", "x-chain": chain}

    @staticmethod
    def _unwrap(payload: Any) -> Optional[Any]:
        """Return ``data`` from a ``{success, data}`` envelope, or None"""
        if not isinstance(payload, dict) or not payload.get("success"):
            return None
        return payload.get("data")

    # ========================================================================
    # WALLET HISTORY
    # ========================================================================

    async def get_wallet_trades(
        self,
        wallet: str,
        chain: str = "solana",
        before: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Fetch a page of the wallet's swaps, newest first.

        Args:
            wallet: Wallet address
            chain: Birdeye chain name
            before: Transaction hash cursor; only older swaps are returned
            limit: Page size

        Returns:
            Raw swap items (empty list when the provider has nothing)
        """
        self._require_configured()

        params: Dict[str, Any] = {"wallet": wallet, "tx_type": "swap", "limit": limit}
        if before:
            params["before"] = before

        payload = await self._request(
            "GET", "/v1/wallet/tx_list", params=params,
            headers=self._chain_headers(chain),
        )
        data = self._unwrap(payload)
        if not data:
            return []

        items = data.get("items") if isinstance(data, dict) else None
        if items is None and isinstance(data, dict):
            # Some deployments key the list by chain name
            items = data.get(chain)
        return list(items or [])

    # ========================================================================
    # MARKET DATA
    # ========================================================================

    async def get_token_overview(
        self, token_address: str, chain: str = "solana"
    ) -> Optional[TokenMetadata]:
        """Fetch token name/symbol/decimals/logo"""
        self._require_configured()

        payload = await self._request(
            "GET", "/defi/token_overview", params={"address": token_address},
            headers=self._chain_headers(chain),
        )
        data = self._unwrap(payload)
        if not data:
            return None

        return TokenMetadata(
            address=token_address,
            symbol=data.get("symbol") or "UNKNOWN",
            name=data.get("name") or "Unknown Token",
            decimals=data.get("decimals"),
            logo_uri=data.get("logoURI"),
        )

    async def get_price(
        self, token_address: str, chain: str = "solana"
    ) -> Optional[TokenPrice]:
        """Fetch the current price and 24h change"""
        self._require_configured()

        payload = await self._request(
            "GET", "/defi/price", params={"address": token_address},
            headers=self._chain_headers(chain),
        )
        data = self._unwrap(payload)
        if not data:
            return None

        return TokenPrice(
            current_price=float(data.get("value") or 0),
            price_change_24h=float(data.get("priceChange24h") or data.get("priceChange24hPercent") or 0),
            volume_24h=data.get("volume24h"),
            last_updated=(data.get("updateUnixTime") or 0) * 1000 or None,
        )

    async def get_price_history(
        self,
        token_address: str,
        chain: str,
        time_from_ms: int,
        time_to_ms: int,
        interval: str = "1H",
    ) -> List[PricePoint]:
        """
        Fetch historical prices for a token.

        Args:
            token_address: Token mint / contract address
            chain: Birdeye chain name
            time_from_ms: Window start (ms)
            time_to_ms: Window end (ms)
            interval: Candle interval (1m, 5m, 15m, 1H, 4H, 1D)

        Returns:
            Price points ordered by time
        """
        self._require_configured()

        payload = await self._request(
            "GET",
            "/defi/history_price",
            params={
                "address": token_address,
                "address_type": "token",
                "type": interval,
                "time_from": time_from_ms // 1000,
                "time_to": time_to_ms // 1000,
            },
            headers=self._chain_headers(chain),
        )
        data = self._unwrap(payload)
        if not data:
            return []

        points = []
        for item in data.get("items") or []:
            try:
                points.append(PricePoint(
                    timestamp=int(item["unixTime"]) * 1000,
                    price=float(item.get("value") or 0),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"birdeye: skipping malformed price point {item}: {e}")
        return points
