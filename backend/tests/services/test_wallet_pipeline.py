"""
Tests for the end-to-end wallet analysis pipeline.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from conviction.services.analysis.batch import BatchResult
from conviction.services.analysis.pipeline import WalletAnalysisService
from conviction.services.cohort.analysis_repository import AnalysisRepository
from conviction.services.ingestion import IngestionResult
from conviction.services.models import Chain, TradeSide
from conviction.services.providers import AllProvidersExhausted, NetworkError

from tests.factories import BASE_TIMESTAMP_MS, DAY_MS, ConvictionMetricsFactory, TradeFactory


WALLET = "0xAbC0000000000000000000000000000000000001"


@pytest.fixture
def ingestion():
    trades = [
        TradeFactory.build(timestamp_ms=BASE_TIMESTAMP_MS, side=TradeSide.BUY),
        TradeFactory.build(timestamp_ms=BASE_TIMESTAMP_MS + DAY_MS, side=TradeSide.SELL, unit_price_usd=2.0),
    ]
    service = Mock()
    service.ingest = AsyncMock(return_value=IngestionResult(transactions=trades, provider="birdeye"))
    return service


@pytest.fixture
def batch():
    service = Mock()
    service.analyze = AsyncMock(return_value=BatchResult(positions=[], metrics=ConvictionMetricsFactory(score=55.0)))
    return service


@pytest.fixture
def ethos():
    client = Mock()
    client.get_score_by_address = AsyncMock(return_value=1750.0)
    return client


class TestWalletAnalysisService:

    @pytest.mark.asyncio
    async def test_ingests_aggregates_and_scores(self, ingestion, batch, ethos):
        service = WalletAnalysisService(ingestion, batch, ethos)

        result = await service.analyze_wallet(WALLET, Chain.BASE, time_horizon_days=30, min_trade_value=10.0)

        ingestion.ingest.assert_awaited_once_with(WALLET, Chain.BASE, 30, 10.0)
        positions = batch.analyze.await_args.args[0]
        assert len(positions) == 1
        assert len(positions[0].entries) == 1
        assert len(positions[0].exits) == 1
        assert batch.analyze.await_args.kwargs["reputation_score"] is None
        assert batch.analyze.await_args.kwargs["repository"] is None
        assert result.metrics.score == 55.0
        assert result.ingestion.provider == "birdeye"
        assert result.persisted is False
        ethos.get_score_by_address.assert_not_called()

    @pytest.mark.asyncio
    async def test_reputation_lookup(self, ingestion, batch, ethos):
        service = WalletAnalysisService(ingestion, batch, ethos)

        result = await service.analyze_wallet(WALLET, Chain.BASE, include_reputation=True)

        assert result.reputation_score == 1750.0
        assert batch.analyze.await_args.kwargs["reputation_score"] == 1750.0

    @pytest.mark.asyncio
    async def test_reputation_failure_is_ignored(self, ingestion, batch, ethos):
        ethos.get_score_by_address.side_effect = NetworkError("timeout", provider="ethos")
        service = WalletAnalysisService(ingestion, batch, ethos)

        result = await service.analyze_wallet(WALLET, Chain.BASE, include_reputation=True)

        assert result.reputation_score is None

    @pytest.mark.asyncio
    async def test_ingestion_failure_propagates(self, ingestion, batch):
        ingestion.ingest.side_effect = AllProvidersExhausted("base", [("birdeye", "down")])
        service = WalletAnalysisService(ingestion, batch)

        with pytest.raises(AllProvidersExhausted):
            await service.analyze_wallet(WALLET, Chain.BASE)

        batch.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_persists_with_session(self, db_session, ingestion, batch, ethos):
        service = WalletAnalysisService(ingestion, batch, ethos)

        result = await service.analyze_wallet(
            WALLET, Chain.BASE, time_horizon_days=90,
            include_reputation=True, persist=True, session=db_session,
        )

        assert result.persisted is True
        assert isinstance(batch.analyze.await_args.kwargs["repository"], AnalysisRepository)
        rows = await AnalysisRepository(db_session).get_analyses_by_address(WALLET)
        assert len(rows) == 1
        assert rows[0].address == WALLET.lower()
        assert rows[0].time_horizon == 90
        assert rows[0].ethos_score == 1750.0

    @pytest.mark.asyncio
    async def test_persist_without_session_is_skipped(self, ingestion, batch):
        service = WalletAnalysisService(ingestion, batch)

        result = await service.analyze_wallet(WALLET, Chain.BASE, persist=True)

        assert result.persisted is False
