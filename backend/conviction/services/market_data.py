"""
Market Data Service

Read-through, provider-chained access to token metadata, current prices,
price history and base-asset (SOL/ETH) USD prices.

Each lookup walks an ordered provider list for the chain. A provider that
is unconfigured, raises, or returns nothing falls through to the next one.
Total failure yields None / an empty history, never an exception.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from conviction.core.config import settings
from conviction.services.cache import Cache, CacheKeys, InMemoryCache
from conviction.services.models import Chain
from conviction.services.providers import (
    BirdeyeClient,
    CoinGeckoClient,
    DexScreenerClient,
    JupiterClient,
    PricePoint,
    TokenMetadata,
    TokenPrice,
    UpstreamError,
)


SOL_MINT = "So11111111111111111111111111111111111111112"
WETH_BASE = "0x4200000000000000000000000000000000000006"

# A DexScreener "now" sample is only meaningful for windows ending recently
NOW_POINT_MAX_LAG_MS = 60 * 60 * 1000

Attempt = Tuple[Any, Callable[[], Awaitable[Any]]]


class MarketDataService:
    """
    Provider-chained market data with a shared read-through cache.

    Example:
        ```python
        market = MarketDataService(cache=InMemoryCache())
        meta = await market.get_token_metadata(mint, Chain.SOLANA)
        history = await market.get_price_history(mint, Chain.SOLANA, t0, t1)
        ```
    """

    def __init__(
        self,
        cache: Optional[Cache] = None,
        birdeye: Optional[BirdeyeClient] = None,
        jupiter: Optional[JupiterClient] = None,
        dexscreener: Optional[DexScreenerClient] = None,
        coingecko: Optional[CoinGeckoClient] = None,
    ):
        self.cache = cache or InMemoryCache()
        self.birdeye = birdeye or BirdeyeClient()
        self.jupiter = jupiter or JupiterClient()
        self.dexscreener = dexscreener or DexScreenerClient()
        self.coingecko = coingecko or CoinGeckoClient()

    async def _first_success(self, what: str, attempts: List[Attempt], empty: Any = None) -> Any:
        """
        Run attempts in order and return the first non-empty result.

        When no provider has data, returns ``empty`` if at least one of them
        answered and None if every configured provider raised.
        """
        answered = False
        for client, call in attempts:
            if not client.is_configured:
                continue
            try:
                result = await call()
            except UpstreamError as e:
                logger.warning(f"{what}: {client.name} failed, falling back: {e}")
                continue
            if result:
                return result
            answered = True
            logger.debug(f"{what}: {client.name} returned no data")
        return empty if answered else None

    # ========================================================================
    # METADATA
    # ========================================================================

    async def get_token_metadata(self, token_address: str, chain: Chain) -> Optional[TokenMetadata]:
        """Name/symbol/logo for a token"""
        chain = Chain(chain)

        async def fetch() -> Optional[Dict[str, Any]]:
            if chain == Chain.SOLANA:
                attempts = [
                    (self.birdeye, lambda: self.birdeye.get_token_overview(token_address, chain.value)),
                    (self.jupiter, lambda: self.jupiter.get_token(token_address)),
                    (self.dexscreener, lambda: self.dexscreener.get_token_metadata(token_address)),
                ]
            else:
                attempts = [
                    (self.dexscreener, lambda: self.dexscreener.get_token_metadata(token_address)),
                ]
            meta = await self._first_success(f"metadata {token_address}", attempts)
            return meta.model_dump() if meta else None

        data = await self.cache.get_or_compute(
            CacheKeys.metadata(token_address, chain.value),
            settings.CACHE_TTL_METADATA,
            fetch,
        )
        return TokenMetadata(**data) if data else None

    async def get_metadata_many(
        self, token_addresses: Iterable[str], chain: Chain
    ) -> Dict[str, Optional[TokenMetadata]]:
        """Metadata for many tokens, fetched concurrently"""
        unique = list(dict.fromkeys(token_addresses))
        results = await asyncio.gather(*(self.get_token_metadata(t, chain) for t in unique))
        return dict(zip(unique, results))

    # ========================================================================
    # CURRENT PRICE
    # ========================================================================

    async def get_price(self, token_address: str, chain: Chain) -> Optional[TokenPrice]:
        """Current USD price and 24h change"""
        chain = Chain(chain)

        async def fetch() -> Optional[Dict[str, Any]]:
            attempts: List[Attempt] = []
            if chain == Chain.SOLANA:
                attempts.append(
                    (self.birdeye, lambda: self.birdeye.get_price(token_address, chain.value))
                )
            attempts.append((self.dexscreener, lambda: self.dexscreener.get_price(token_address)))
            price = await self._first_success(f"price {token_address}", attempts)
            return price.model_dump() if price else None

        data = await self.cache.get_or_compute(
            CacheKeys.price(token_address, chain.value),
            settings.CACHE_TTL_PRICE,
            fetch,
        )
        return TokenPrice(**data) if data else None

    async def get_prices_many(
        self, token_addresses: Iterable[str], chain: Chain
    ) -> Dict[str, Optional[TokenPrice]]:
        """Current prices for many tokens, fetched concurrently"""
        unique = list(dict.fromkeys(token_addresses))
        results = await asyncio.gather(*(self.get_price(t, chain) for t in unique))
        return dict(zip(unique, results))

    # ========================================================================
    # PRICE HISTORY
    # ========================================================================

    async def get_price_history(
        self,
        token_address: str,
        chain: Chain,
        time_from_ms: int,
        time_to_ms: int,
    ) -> List[PricePoint]:
        """
        Historical prices for ``[time_from_ms, time_to_ms]``.

        Birdeye hourly candles first, then CoinGecko's range chart, then a
        single DexScreener "now" sample when the window ends recently.
        """
        chain = Chain(chain)

        async def fetch() -> Optional[List[Dict[str, Any]]]:
            attempts: List[Attempt] = [
                (self.birdeye, lambda: self.birdeye.get_price_history(
                    token_address, chain.value, time_from_ms, time_to_ms
                )),
                (self.coingecko, lambda: self.coingecko.get_market_chart_range(
                    chain.value, token_address, time_from_ms, time_to_ms
                )),
            ]
            now_ms = int(time.time() * 1000)
            if now_ms - time_to_ms <= NOW_POINT_MAX_LAG_MS:
                attempts.append(
                    (self.dexscreener, lambda: self.dexscreener.get_current_price_point(token_address))
                )
            points = await self._first_success(f"history {token_address}", attempts, empty=[])
            if points is None:
                # Outage, leave the window uncached
                return None
            return [p.model_dump() for p in points]

        data = await self.cache.get_or_compute(
            CacheKeys.price_history(token_address, chain.value, time_from_ms, time_to_ms),
            settings.CACHE_TTL_PRICE_HISTORY,
            fetch,
        )
        return [PricePoint(**p) for p in data or []]

    # ========================================================================
    # BASE ASSETS
    # ========================================================================

    async def get_base_asset_price(self, chain: Chain) -> float:
        """USD price of the chain's native asset (SOL or ETH)"""
        chain = Chain(chain)

        if chain == Chain.SOLANA:
            asset, fallback = "SOL", settings.SOL_FALLBACK_PRICE_USD

            async def fetch() -> Optional[float]:
                async def via_dexscreener() -> Optional[float]:
                    price = await self.dexscreener.get_price(SOL_MINT)
                    return price.current_price if price else None

                return await self._first_success("SOL price", [
                    (self.jupiter, lambda: self.jupiter.get_price(SOL_MINT)),
                    (self.dexscreener, via_dexscreener),
                ])
        else:
            asset, fallback = "ETH", settings.ETH_FALLBACK_PRICE_USD

            async def fetch() -> Optional[float]:
                async def via_dexscreener() -> Optional[float]:
                    price = await self.dexscreener.get_price(WETH_BASE)
                    return price.current_price if price else None

                return await self._first_success("ETH price", [
                    (self.dexscreener, via_dexscreener),
                ])

        price = await self.cache.get_or_compute(
            CacheKeys.base_price(chain.value, asset),
            settings.CACHE_TTL_BASE_PRICE,
            fetch,
        )
        if not price:
            logger.warning(f"Using fallback {asset} price ${fallback}")
            return fallback
        return float(price)

    async def close(self):
        await asyncio.gather(
            self.birdeye.close(),
            self.jupiter.close(),
            self.dexscreener.close(),
            self.coingecko.close(),
        )
