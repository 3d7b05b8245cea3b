"""
Patience Tax Engine

Counterfactual "what if the trader had held" for positions with exits.
"""

import time
from typing import Callable, List, Optional

from loguru import logger

from conviction.core.config import settings
from conviction.services.market_data import MarketDataService
from conviction.services.models import Chain, MS_PER_DAY, PatienceTaxAnalysis, Position
from conviction.services.providers import PricePoint


MS_PER_HOUR = 60 * 60 * 1000


def compute_patience_tax(
    exit_price: float,
    exit_timestamp_ms: int,
    total_realized_usd: float,
    history: List[PricePoint],
) -> PatienceTaxAnalysis:
    """
    Patience tax for one exit against a post-exit price history.

    The exit price is the floor of the scan, so a falling market yields a
    zero tax rather than a negative one. Empty history (or an unusable exit
    price) is a zero result anchored at the exit.
    """
    if not history or exit_price <= 0:
        return PatienceTaxAnalysis(
            patience_tax_usd=0.0,
            max_missed_gain_pct=0.0,
            max_missed_gain_timestamp=exit_timestamp_ms,
            would_be_value_usd=total_realized_usd,
        )

    max_price = exit_price
    max_timestamp = exit_timestamp_ms
    for point in history:
        if point.price > max_price:
            max_price = point.price
            max_timestamp = point.timestamp

    multiplier = max_price / exit_price
    return PatienceTaxAnalysis(
        patience_tax_usd=max(0.0, total_realized_usd * (multiplier - 1)),
        max_missed_gain_pct=(multiplier - 1) * 100,
        max_missed_gain_timestamp=max_timestamp,
        would_be_value_usd=total_realized_usd * multiplier,
    )


class PatienceTaxEngine:
    """
    Fetches post-exit price windows and computes patience tax.

    "now" is floored to the hour so repeated analyses of the same wallet
    request identical windows and hit the price-history cache.
    """

    def __init__(
        self,
        market: MarketDataService,
        window_days: Optional[int] = None,
        early_exit_threshold_pct: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.market = market
        self.window_days = window_days or settings.PATIENCE_TAX_WINDOW_DAYS
        self.early_exit_threshold_pct = (
            settings.EARLY_EXIT_THRESHOLD_PCT
            if early_exit_threshold_pct is None else early_exit_threshold_pct
        )
        self._clock = clock

    def _now_ms(self) -> int:
        now = int(self._clock() * 1000)
        return now - now % MS_PER_HOUR

    def window_for(self, exit_timestamp_ms: int) -> tuple:
        end = min(self._now_ms(), exit_timestamp_ms + self.window_days * MS_PER_DAY)
        return exit_timestamp_ms, max(end, exit_timestamp_ms)

    def is_early_exit(self, analysis: Optional[PatienceTaxAnalysis]) -> bool:
        return analysis is not None and analysis.max_missed_gain_pct > self.early_exit_threshold_pct

    async def analyze_exit(
        self,
        token_address: str,
        chain: Chain,
        exit_price: float,
        exit_timestamp_ms: int,
        total_realized_usd: float,
    ) -> PatienceTaxAnalysis:
        """Patience tax for a single exit"""
        if exit_price <= 0:
            logger.debug(f"No usable exit price for {token_address}; zero patience tax")
            return compute_patience_tax(exit_price, exit_timestamp_ms, total_realized_usd, [])

        start, end = self.window_for(exit_timestamp_ms)
        history = await self.market.get_price_history(token_address, chain, start, end)
        if not history:
            logger.debug(f"No price history for {token_address} after exit; zero patience tax")

        return compute_patience_tax(exit_price, exit_timestamp_ms, total_realized_usd, history)

    async def analyze(self, position: Position, chain: Chain) -> Optional[PatienceTaxAnalysis]:
        """
        Patience tax for a position's last exit.

        Returns None for positions that never exited. The result is also
        attached to ``position.patience_tax``.
        """
        last_exit = position.last_exit
        if last_exit is None:
            return None

        analysis = await self.analyze_exit(
            position.token_address,
            chain,
            last_exit.unit_price_usd,
            last_exit.timestamp_ms,
            position.total_realized_usd,
        )
        position.patience_tax = analysis
        return analysis
