"""
Unit tests for the patience tax engine.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from conviction.services.analysis.patience_tax import PatienceTaxEngine, compute_patience_tax
from conviction.services.analysis.positions import aggregate_positions
from conviction.services.models import Chain, TradeSide
from conviction.services.providers import PricePoint

from tests.factories import TradeFactory, BASE_TIMESTAMP_MS, DAY_MS

HOUR_MS = 60 * 60 * 1000
EXIT_TS = BASE_TIMESTAMP_MS + 10 * DAY_MS


def _points(*prices, start=EXIT_TS):
    return [PricePoint(timestamp=start + i * HOUR_MS, price=p) for i, p in enumerate(prices)]


class TestComputePatienceTax:
    """Pure counterfactual math"""

    def test_missed_doubling(self):
        """Sold at $3, price later peaked at $6"""
        history = _points(3.5, 6.0, 4.0)

        result = compute_patience_tax(3.0, EXIT_TS, 300.0, history)

        assert result.patience_tax_usd == pytest.approx(300.0)
        assert result.max_missed_gain_pct == pytest.approx(100.0)
        assert result.would_be_value_usd == pytest.approx(600.0)
        assert result.max_missed_gain_timestamp == EXIT_TS + HOUR_MS

    def test_falling_market_is_not_negative(self):
        result = compute_patience_tax(3.0, EXIT_TS, 300.0, _points(2.0, 1.0))

        assert result.patience_tax_usd == 0.0
        assert result.max_missed_gain_pct == 0.0
        assert result.max_missed_gain_timestamp == EXIT_TS
        assert result.would_be_value_usd == pytest.approx(300.0)

    def test_empty_history_is_zero_result(self):
        result = compute_patience_tax(3.0, EXIT_TS, 300.0, [])

        assert result.patience_tax_usd == 0.0
        assert result.max_missed_gain_pct == 0.0
        assert result.max_missed_gain_timestamp == EXIT_TS
        assert result.would_be_value_usd == 300.0

    def test_unusable_exit_price(self):
        result = compute_patience_tax(0.0, EXIT_TS, 300.0, _points(5.0))

        assert result.patience_tax_usd == 0.0


@pytest.fixture
def fixed_clock():
    # 100 days after the base timestamp plus 20 minutes
    return lambda: (BASE_TIMESTAMP_MS + 100 * DAY_MS + 20 * 60 * 1000) / 1000


class TestPatienceTaxEngine:
    """Window selection and position handling"""

    def test_window_capped_at_ninety_days(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)

        start, end = engine.window_for(BASE_TIMESTAMP_MS)

        assert start == BASE_TIMESTAMP_MS
        assert end == BASE_TIMESTAMP_MS + 90 * DAY_MS

    def test_window_ends_at_now_floored_to_hour(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)

        _, end = engine.window_for(EXIT_TS + 80 * DAY_MS)

        assert end == BASE_TIMESTAMP_MS + 100 * DAY_MS
        assert end % HOUR_MS == 0

    def test_window_never_inverts(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)
        future = BASE_TIMESTAMP_MS + 200 * DAY_MS

        start, end = engine.window_for(future)

        assert start == end == future

    @pytest.mark.asyncio
    async def test_analyze_position_with_exit(self, mock_market, fixed_clock):
        mock_market.get_price_history = AsyncMock(return_value=_points(4.0, 6.0))
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)
        [position] = aggregate_positions([
            TradeFactory(side=TradeSide.BUY, amount=100, unit_price_usd=1.0, timestamp_ms=BASE_TIMESTAMP_MS),
            TradeFactory(side=TradeSide.SELL, amount=100, unit_price_usd=3.0, timestamp_ms=EXIT_TS),
        ])

        result = await engine.analyze(position, Chain.SOLANA)

        assert result.patience_tax_usd == pytest.approx(300.0)
        assert engine.is_early_exit(result) is True
        assert position.patience_tax is result
        mock_market.get_price_history.assert_awaited_once_with(
            position.token_address, Chain.SOLANA, EXIT_TS, EXIT_TS + 90 * DAY_MS
        )

    @pytest.mark.asyncio
    async def test_position_without_exit_returns_none(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)
        [position] = aggregate_positions([TradeFactory(side=TradeSide.BUY)])

        assert await engine.analyze(position, Chain.SOLANA) is None
        mock_market.get_price_history.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_exit_price_skips_history(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)

        result = await engine.analyze_exit("mint", Chain.BASE, 0.0, EXIT_TS, 100.0)

        assert result.patience_tax_usd == 0.0
        mock_market.get_price_history.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_history_is_not_penalized(self, mock_market, fixed_clock):
        engine = PatienceTaxEngine(mock_market, clock=fixed_clock)

        result = await engine.analyze_exit("mint", Chain.SOLANA, 3.0, EXIT_TS, 300.0)

        assert result.patience_tax_usd == 0.0
        assert engine.is_early_exit(result) is False

    def test_early_exit_threshold_is_strict(self, fixed_clock):
        engine = PatienceTaxEngine(Mock(), early_exit_threshold_pct=50, clock=fixed_clock)

        assert engine.is_early_exit(compute_patience_tax(2.0, EXIT_TS, 100.0, _points(3.0))) is False
        assert engine.is_early_exit(compute_patience_tax(2.0, EXIT_TS, 100.0, _points(3.02))) is True
        assert engine.is_early_exit(None) is False
