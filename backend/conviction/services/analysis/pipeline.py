"""
Wallet Analysis Pipeline

End to end for one wallet: ingest -> aggregate -> enrich and score ->
optional reputation lookup -> optional persistence.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from conviction.core.config import settings
from conviction.services.analysis.batch import BatchAnalysisService
from conviction.services.analysis.positions import aggregate_positions
from conviction.services.cohort.analysis_repository import AnalysisRepository
from conviction.services.ingestion import IngestionResult, TransactionIngestionService
from conviction.services.models import Chain, ConvictionMetrics, PositionAnalysis
from conviction.services.providers import EthosClient, UpstreamError


@dataclass
class WalletAnalysis:
    address: str
    chain: Chain
    time_horizon_days: int
    ingestion: IngestionResult
    positions: List[PositionAnalysis] = field(default_factory=list)
    metrics: Optional[ConvictionMetrics] = None
    reputation_score: Optional[float] = None
    persisted: bool = False


class WalletAnalysisService:
    """
    Runs the full conviction analysis for a wallet.

    Example:
        ```python
        service = WalletAnalysisService(ingestion, batch, ethos)
        result = await service.analyze_wallet("0xabc...", Chain.BASE, 180, 100.0)
        ```
    """

    def __init__(
        self,
        ingestion: TransactionIngestionService,
        batch: BatchAnalysisService,
        ethos: Optional[EthosClient] = None,
    ):
        self.ingestion = ingestion
        self.batch = batch
        self.ethos = ethos

    async def lookup_reputation(self, address: str) -> Optional[float]:
        """Ethos score, or None when unavailable"""
        if self.ethos is None:
            return None
        try:
            return await self.ethos.get_score_by_address(address)
        except UpstreamError as e:
            logger.warning(f"Reputation lookup failed for {address}: {e}")
            return None

    async def analyze_wallet(
        self,
        address: str,
        chain: Chain,
        time_horizon_days: int = settings.DEFAULT_TIME_HORIZON_DAYS,
        min_trade_value: float = settings.DEFAULT_MIN_TRADE_VALUE_USD,
        include_reputation: bool = False,
        persist: bool = False,
        session: Optional[AsyncSession] = None,
        identity: Optional[Dict[str, Any]] = None,
    ) -> WalletAnalysis:
        """
        Analyze one wallet.

        Args:
            address: Wallet address
            chain: Chain to analyze
            time_horizon_days: Lookback in days
            min_trade_value: Minimum trade size in USD
            include_reputation: Apply the Ethos reputation multiplier
            persist: Store the metrics (requires ``session``)
            session: Database session for percentile lookup and persistence
            identity: Optional ENS / Farcaster identity fields to store

        Raises:
            AllProvidersExhausted: ingestion failed on every provider
        """
        chain = Chain(chain)
        ingestion = await self.ingestion.ingest(address, chain, time_horizon_days, min_trade_value)
        positions = aggregate_positions(ingestion.transactions)

        reputation = await self.lookup_reputation(address) if include_reputation else None

        repository = AnalysisRepository(session) if session is not None else None
        batch = await self.batch.analyze(
            positions, chain, reputation_score=reputation, repository=repository
        )

        result = WalletAnalysis(
            address=address,
            chain=chain,
            time_horizon_days=time_horizon_days,
            ingestion=ingestion,
            positions=batch.positions,
            metrics=batch.metrics,
            reputation_score=reputation,
        )

        if persist:
            if repository is None:
                logger.warning(f"Persistence requested for {address} but no database session")
            else:
                ident = dict(identity or {})
                if reputation is not None:
                    ident.setdefault("ethos_score", reputation)
                await repository.save_analysis(
                    address, chain.value, batch.metrics, time_horizon_days, identity=ident
                )
                result.persisted = True

        return result
