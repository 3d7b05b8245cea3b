"""
Transaction Ingestion Orchestrator

Per chain, tries trade sources in configured priority order. A source that
raises or returns nothing falls through to the next one; results from two
sources are never mixed. If every source fails the request fails with
AllProvidersExhausted, which is distinct from a successful empty result.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from conviction.core.config import settings
from conviction.services.ingestion.normalizer import (
    QualityReport, dedupe_trades, validate_trades
)
from conviction.services.ingestion.sources import (
    AlchemyTradeSource, BirdeyeTradeSource, HeliusTradeSource,
    IngestionWindow, TradeSource
)
from conviction.services.market_data import MarketDataService
from conviction.services.models import Chain, Trade
from conviction.services.providers import (
    AlchemyClient, AllProvidersExhausted, BirdeyeClient, HeliusClient, UpstreamError
)


@dataclass
class IngestionResult:
    """Validated, deduplicated, time-ordered trades plus quality data"""
    transactions: List[Trade] = field(default_factory=list)
    quality: QualityReport = field(default_factory=QualityReport)
    provider: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> Dict:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "count": self.count,
            "quality": self.quality.to_dict(),
            "provider": self.provider,
        }


SOURCE_FACTORIES: Dict[str, Callable[[MarketDataService], TradeSource]] = {
    "birdeye": lambda market: BirdeyeTradeSource(BirdeyeClient(), market),
    "helius": lambda market: HeliusTradeSource(HeliusClient(), market),
    "alchemy": lambda market: AlchemyTradeSource(AlchemyClient(), market),
}


def build_trade_sources(market: MarketDataService) -> Dict[Chain, List[TradeSource]]:
    """Instantiate the configured, ordered source list for every chain"""
    built: Dict[str, TradeSource] = {}
    by_chain: Dict[Chain, List[TradeSource]] = {}

    for chain_name, names in settings.TRADE_PROVIDERS.items():
        chain = Chain(chain_name)
        sources = []
        for name in names:
            if name not in SOURCE_FACTORIES:
                raise ValueError(f"Unknown trade provider '{name}' for {chain_name}")
            if name not in built:
                built[name] = SOURCE_FACTORIES[name](market)
            source = built[name]
            if not source.supports(chain):
                raise ValueError(f"Trade provider '{name}' does not support {chain_name}")
            sources.append(source)
        by_chain[chain] = sources

    return by_chain


class TransactionIngestionService:
    """
    Orchestrates trade ingestion across ordered provider fallbacks.

    Example:
        ```python
        service = TransactionIngestionService(market=market)
        result = await service.ingest("7xKX...", Chain.SOLANA, 180, 100.0)
        print(result.count, result.quality.to_dict())
        ```
    """

    def __init__(
        self,
        sources: Optional[Dict[Chain, List[TradeSource]]] = None,
        market: Optional[MarketDataService] = None,
    ):
        if sources is None:
            sources = build_trade_sources(market or MarketDataService())
        self.sources = sources

    async def ingest(
        self,
        address: str,
        chain: Chain,
        time_horizon_days: int = settings.DEFAULT_TIME_HORIZON_DAYS,
        min_trade_value: float = settings.DEFAULT_MIN_TRADE_VALUE_USD,
    ) -> IngestionResult:
        """
        Fetch, validate and deduplicate a wallet's trades.

        Args:
            address: Wallet address
            chain: Chain to ingest from
            time_horizon_days: Lookback in days
            min_trade_value: Skip trades worth less than this (USD)

        Returns:
            IngestionResult; ``count == 0`` means no qualifying trades

        Raises:
            AllProvidersExhausted: every provider for the chain failed
        """
        chain = Chain(chain)
        window = IngestionWindow.from_horizon(chain, time_horizon_days, min_trade_value)

        trades, provider = await self._fetch_with_fallback(address, window)

        validation = validate_trades(trades)
        unique = dedupe_trades(validation.valid)

        result = IngestionResult(
            transactions=unique,
            quality=validation.quality,
            provider=provider,
        )
        logger.info(
            f"Ingested {result.count} trades for {address} on {chain.value} "
            f"via {provider or 'none'} (raw={len(trades)}, invalid={validation.invalid_count})"
        )
        return result

    async def _fetch_with_fallback(
        self, address: str, window: IngestionWindow
    ) -> Tuple[List[Trade], Optional[str]]:
        failures: List[Tuple[str, str]] = []
        any_succeeded = False

        for source in self.sources.get(window.chain, []):
            if not source.is_configured:
                logger.info(f"Skipping {source.name}: not configured")
                failures.append((source.name, "not configured"))
                continue

            try:
                trades = await source.fetch_trades(address, window)
            except UpstreamError as e:
                logger.warning(f"{source.name} failed for {address}, trying next provider: {e}")
                failures.append((source.name, str(e)))
                continue

            any_succeeded = True
            if trades:
                return trades, source.name
            logger.warning(f"{source.name} returned no trades for {address}, trying next provider")

        if any_succeeded:
            return [], None

        logger.error(f"All providers exhausted for {address} on {window.chain.value}: {failures}")
        raise AllProvidersExhausted(window.chain.value, failures)

    async def close(self):
        closed = set()
        for sources in self.sources.values():
            for source in sources:
                client = getattr(source, "client", None)
                if client is not None and id(client) not in closed:
                    closed.add(id(client))
                    await client.close()
