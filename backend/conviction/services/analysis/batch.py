"""
Batch Analysis Service

Enriches a wallet's positions with market data and patience tax, then
scores them. Metadata and prices are fetched once per unique token and
patience tax windows are fetched concurrently.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TYPE_CHECKING

from loguru import logger

from conviction.core.config import settings
from conviction.services.analysis.patience_tax import PatienceTaxEngine
from conviction.services.analysis.scoring import ConvictionScorer, clamp
from conviction.services.market_data import MarketDataService
from conviction.services.models import (
    Chain, ConvictionMetrics, Counterfactual, EntryDetails, ExitDetails,
    MS_PER_DAY, PatienceTaxAnalysis, Position, PositionAnalysis
)
from conviction.services.providers import TokenMetadata, TokenPrice

if TYPE_CHECKING:
    from conviction.services.cohort.analysis_repository import AnalysisRepository


def _weighted_price(trades) -> float:
    amount = sum(t.amount for t in trades)
    if amount <= 0:
        return 0.0
    return sum(t.unit_price_usd * t.amount for t in trades) / amount


def analyze_position(
    position: Position,
    metadata: Optional[TokenMetadata],
    price: Optional[TokenPrice],
    patience: Optional[PatienceTaxAnalysis],
    now_ms: Optional[int] = None,
    early_exit_threshold_pct: Optional[float] = None,
) -> PositionAnalysis:
    """Build the caller-facing view of one position"""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    threshold = (
        settings.EARLY_EXIT_THRESHOLD_PCT
        if early_exit_threshold_pct is None else early_exit_threshold_pct
    )

    first_entry = position.first_entry.timestamp_ms if position.first_entry else 0
    entry_details = EntryDetails(
        avg_price=_weighted_price(position.entries),
        total_amount=position.total_entry_amount,
        total_value=position.total_invested_usd,
        first_entry=first_entry,
    )

    exit_details = None
    if position.exits:
        exit_details = ExitDetails(
            avg_price=_weighted_price(position.exits),
            total_amount=position.total_exit_amount,
            total_value=position.total_realized_usd,
            last_exit=position.last_exit.timestamp_ms,
        )

    realized_pnl = position.realized_pnl_usd
    realized_pnl_pct = (
        realized_pnl / position.total_invested_usd * 100 if position.total_invested_usd > 0 else 0.0
    )

    unrealized_pnl = None
    if position.is_active and price is not None and position.remaining_balance > 0:
        current_value = position.remaining_balance * price.current_price
        cost_basis = position.remaining_balance * entry_details.avg_price
        unrealized_pnl = current_value - cost_basis

    holding_end = exit_details.last_exit if exit_details else now_ms
    holding_days = (holding_end - first_entry) / MS_PER_DAY

    return PositionAnalysis(
        token_address=position.token_address,
        token_symbol=position.token_symbol or (metadata.symbol if metadata else None),
        metadata=metadata.to_public() if metadata else None,
        current_price=price.current_price if price else 0.0,
        price_change_24h=price.price_change_24h if price else 0.0,
        entry_details=entry_details,
        exit_details=exit_details,
        patience_tax=patience.patience_tax_usd if patience else 0.0,
        max_missed_gain=patience.max_missed_gain_pct if patience else 0.0,
        max_missed_gain_date=patience.max_missed_gain_timestamp if patience else 0,
        realized_pnl=realized_pnl,
        realized_pnl_percent=realized_pnl_pct,
        unrealized_pnl=unrealized_pnl,
        holding_period_days=round(holding_days),
        is_early_exit=patience is not None and patience.max_missed_gain_pct > threshold,
        counterfactual=Counterfactual(
            would_be_value=patience.would_be_value_usd,
            missed_gain_dollars=patience.patience_tax_usd,
        ) if patience else None,
        total_invested=position.total_invested_usd,
    )


@dataclass
class BatchResult:
    positions: List[PositionAnalysis] = field(default_factory=list)
    metrics: Optional[ConvictionMetrics] = None


class BatchAnalysisService:
    """
    Positions -> analyzed positions + conviction metrics.

    Example:
        ```python
        service = BatchAnalysisService(market)
        result = await service.analyze(positions, Chain.SOLANA)
        print(result.metrics.score, result.metrics.archetype)
        ```
    """

    def __init__(
        self,
        market: MarketDataService,
        engine: Optional[PatienceTaxEngine] = None,
        scorer: Optional[ConvictionScorer] = None,
    ):
        self.market = market
        self.engine = engine or PatienceTaxEngine(market)
        self.scorer = scorer or ConvictionScorer()

    async def analyze(
        self,
        positions: List[Position],
        chain: Chain,
        reputation_score: Optional[float] = None,
        repository: Optional["AnalysisRepository"] = None,
    ) -> BatchResult:
        """
        Analyze and score a set of positions.

        Args:
            positions: Aggregated positions for one wallet
            chain: Chain the positions live on
            reputation_score: Optional external credibility score
            repository: When given, the percentile is taken from the stored
                population if it is large enough

        Returns:
            BatchResult with per-position analyses and wallet metrics
        """
        chain = Chain(chain)
        tokens = [p.token_address for p in positions]

        metadata_map: Dict[str, Optional[TokenMetadata]] = {}
        price_map: Dict[str, Optional[TokenPrice]] = {}
        if tokens:
            metadata_map, price_map = await asyncio.gather(
                self.market.get_metadata_many(tokens, chain),
                self.market.get_prices_many(tokens, chain),
            )

        patience_results = await asyncio.gather(
            *(self.engine.analyze(p, chain) for p in positions)
        )

        now_ms = int(time.time() * 1000)
        analyses = [
            analyze_position(
                position,
                metadata_map.get(position.token_address),
                price_map.get(position.token_address),
                patience,
                now_ms=now_ms,
                early_exit_threshold_pct=self.engine.early_exit_threshold_pct,
            )
            for position, patience in zip(positions, patience_results)
        ]

        metrics = self.scorer.score(analyses, reputation_score=reputation_score)

        if repository is not None and metrics.total_positions > 0:
            share_below = await repository.get_real_percentile(metrics.score, chain.value)
            if share_below is not None:
                # Same "top N%" orientation as the inverse-score fallback
                metrics.percentile = int(clamp(100 - share_below, 1, 99))

        logger.info(
            f"Scored {metrics.total_positions} positions on {chain.value}: "
            f"score={metrics.score} archetype={metrics.archetype.value} "
            f"patience_tax=${metrics.patience_tax}"
        )
        return BatchResult(positions=analyses, metrics=metrics)
