"""
Unit tests for the transaction normalizer.

Tests cover:
- Birdeye / Helius / Alchemy record normalization
- Side inference and explicit side labels
- Decimal-scale correction and LP exclusion
- Validation, quality reporting and deduplication
"""

import pytest

from conviction.services.ingestion.normalizer import (
    SOL_MINT,
    TradeNormalizer,
    correct_decimal_scale,
    dedupe_trades,
    is_base_asset,
    is_excluded_token,
    is_stablecoin,
    validate_trade,
    validate_trades,
)
from conviction.services.models import Chain, TradeSide
from conviction.services.providers import InvalidRecordError

from tests.factories import TradeFactory, BASE_TIMESTAMP_MS


WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

EVM_WALLET = "0xAbCdEf0000000000000000000000000000000001"
DEGEN = "0x4ed4e862860bed51a9570b96d89af5e1b0efefed"
WETH = "0x4200000000000000000000000000000000000006"


@pytest.fixture
def solana_normalizer():
    return TradeNormalizer(WALLET, Chain.SOLANA, base_asset_price_usd=150.0)


# ============================================================================
# Known assets
# ============================================================================

class TestKnownAssets:
    """Base asset, stablecoin and LP classification"""

    def test_base_asset_by_mint_and_symbol(self):
        assert is_base_asset(Chain.SOLANA, SOL_MINT)
        assert is_base_asset(Chain.SOLANA, symbol="jitoSOL")
        assert not is_base_asset(Chain.SOLANA, BONK, "BONK")

    def test_base_chain_addresses_are_case_insensitive(self):
        assert is_stablecoin(Chain.BASE, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913")

    def test_stablecoins(self):
        assert is_stablecoin(Chain.SOLANA, USDC)
        assert is_stablecoin(Chain.BASE, symbol="usdbc")
        assert not is_stablecoin(Chain.SOLANA, SOL_MINT)

    @pytest.mark.parametrize("symbol", ["RAY-LP", "LP-SOL", "UNI-V2", "CAKE-LP", "SUSHI SLP"])
    def test_lp_tokens_excluded(self, symbol):
        assert is_excluded_token(symbol)

    def test_regular_tokens_not_excluded(self):
        assert not is_excluded_token("BONK")
        assert not is_excluded_token(None)


class TestDecimalCorrection:
    """Magnitude-based raw-unit correction"""

    def test_rescales_amounts_above_threshold(self):
        assert correct_decimal_scale(5e15, 9) == pytest.approx(5e6)

    def test_leaves_normal_amounts(self):
        assert correct_decimal_scale(1234.5, 9) == 1234.5

    def test_custom_threshold(self):
        assert correct_decimal_scale(2_000_000, 6, threshold=1_000_000) == pytest.approx(2.0)


# ============================================================================
# Birdeye
# ============================================================================

class TestBirdeyeNormalization:
    """Birdeye swap items"""

    def test_buy_valued_at_native_price(self, solana_normalizer):
        item = {
            "txHash": "sig1",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": SOL_MINT, "symbol": "SOL", "uiAmount": 2.0},
            "to": {"address": BONK, "symbol": "BONK", "uiAmount": 1000.0},
        }

        trade = solana_normalizer.normalize_birdeye(item)

        assert trade.side == TradeSide.BUY
        assert trade.token_address == BONK
        assert trade.token_symbol == "BONK"
        assert trade.amount == 1000.0
        assert trade.value_usd == pytest.approx(300.0)
        assert trade.unit_price_usd == pytest.approx(0.3)
        assert trade.timestamp_ms == BASE_TIMESTAMP_MS

    def test_sell_into_stablecoin_is_valued_one_to_one(self, solana_normalizer):
        item = {
            "txHash": "sig2",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": BONK, "symbol": "BONK", "uiAmount": 1000.0},
            "to": {"address": USDC, "symbol": "USDC", "uiAmount": 250.0},
        }

        trade = solana_normalizer.normalize_birdeye(item)

        assert trade.side == TradeSide.SELL
        assert trade.token_address == BONK
        assert trade.value_usd == pytest.approx(250.0)

    def test_explicit_side_label_is_honored(self, solana_normalizer):
        item = {
            "txHash": "sig3",
            "blockUnixTime": 1_704_067_200,
            "side": "sell",
            "from": {"address": SOL_MINT, "symbol": "SOL", "uiAmount": 1.0},
            "to": {"address": BONK, "symbol": "BONK", "uiAmount": 500.0},
        }

        trade = solana_normalizer.normalize_birdeye(item)

        assert trade.side == TradeSide.SELL
        assert trade.token_address == BONK

    def test_leg_price_preferred_over_native_price(self, solana_normalizer):
        item = {
            "txHash": "sig4",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": SOL_MINT, "symbol": "SOL", "uiAmount": 1.0, "priceUsd": 200.0},
            "to": {"address": BONK, "symbol": "BONK", "uiAmount": 100.0},
        }

        trade = solana_normalizer.normalize_birdeye(item)

        assert trade.value_usd == pytest.approx(200.0)

    def test_token_to_token_swap_is_dropped(self, solana_normalizer):
        item = {
            "txHash": "sig5",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": BONK, "symbol": "BONK", "uiAmount": 1.0},
            "to": {"address": "WIFmint", "symbol": "WIF", "uiAmount": 1.0},
        }

        assert solana_normalizer.normalize_birdeye(item) is None

    def test_raw_amount_is_decimal_corrected(self, solana_normalizer):
        item = {
            "txHash": "sig6",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": SOL_MINT, "symbol": "SOL", "amount": 2_000_000_000_000_000, "decimals": 9},
            "to": {"address": BONK, "symbol": "BONK", "uiAmount": 10.0},
        }

        trade = solana_normalizer.normalize_birdeye(item)

        assert trade.value_usd == pytest.approx(2_000_000 * 150.0)

    def test_below_minimum_value_is_skipped(self):
        normalizer = TradeNormalizer(WALLET, Chain.SOLANA, min_trade_value_usd=100, base_asset_price_usd=150.0)
        item = {
            "txHash": "sig7",
            "blockUnixTime": 1_704_067_200,
            "from": {"address": SOL_MINT, "symbol": "SOL", "uiAmount": 0.1},
            "to": {"address": BONK, "symbol": "BONK", "uiAmount": 10.0},
        }

        assert normalizer.normalize_birdeye(item) is None


# ============================================================================
# Helius
# ============================================================================

class TestHeliusNormalization:
    """Helius enhanced transactions"""

    def test_buy_paid_in_native_sol(self, solana_normalizer):
        tx = {
            "signature": "hsig1",
            "timestamp": 1_704_067_200,
            "slot": 240_000_000,
            "feePayer": WALLET,
            "tokenTransfers": [
                {"mint": BONK, "tokenAmount": 1000.0, "fromUserAccount": "pool", "toUserAccount": WALLET},
            ],
            "nativeTransfers": [
                {"fromUserAccount": WALLET, "toUserAccount": "pool", "amount": 2_000_000_000},
                {"fromUserAccount": WALLET, "toUserAccount": "fees", "amount": 5_000},
            ],
        }

        trade = solana_normalizer.normalize_helius(tx)

        assert trade.side == TradeSide.BUY
        assert trade.token_address == BONK
        assert trade.value_usd == pytest.approx(300.0)
        assert trade.unit_price_usd == pytest.approx(0.3)
        assert trade.block_height == 240_000_000

    def test_sell_for_stablecoin(self, solana_normalizer):
        tx = {
            "signature": "hsig2",
            "timestamp": 1_704_067_200,
            "feePayer": WALLET,
            "tokenTransfers": [
                {"mint": BONK, "tokenAmount": 500.0, "fromUserAccount": WALLET, "toUserAccount": "pool"},
                {"mint": USDC, "tokenAmount": 250.0, "fromUserAccount": "pool", "toUserAccount": WALLET},
            ],
        }

        trade = solana_normalizer.normalize_helius(tx)

        assert trade.side == TradeSide.SELL
        assert trade.value_usd == pytest.approx(250.0)

    def test_symbol_resolved_from_lookup(self):
        normalizer = TradeNormalizer(
            WALLET, Chain.SOLANA, base_asset_price_usd=150.0, token_symbols={BONK: "BONK"}
        )
        tx = {
            "signature": "hsig3",
            "timestamp": 1_704_067_200,
            "tokenTransfers": [
                {"mint": BONK, "tokenAmount": 10.0, "fromUserAccount": "pool", "toUserAccount": WALLET},
            ],
            "nativeTransfers": [
                {"fromUserAccount": WALLET, "toUserAccount": "pool", "amount": 1_000_000_000},
            ],
        }

        assert normalizer.normalize_helius(tx).token_symbol == "BONK"

    def test_transaction_without_traded_token_is_dropped(self, solana_normalizer):
        tx = {
            "signature": "hsig4",
            "timestamp": 1_704_067_200,
            "tokenTransfers": [
                {"mint": USDC, "tokenAmount": 10.0, "fromUserAccount": WALLET, "toUserAccount": "x"},
            ],
        }

        assert solana_normalizer.normalize_helius(tx) is None

    def test_transaction_without_base_leg_is_dropped(self, solana_normalizer):
        tx = {
            "signature": "hsig5",
            "timestamp": 1_704_067_200,
            "tokenTransfers": [
                {"mint": BONK, "tokenAmount": 10.0, "fromUserAccount": "x", "toUserAccount": WALLET},
            ],
            "nativeTransfers": [],
        }

        assert solana_normalizer.normalize_helius(tx) is None


# ============================================================================
# Alchemy
# ============================================================================

class TestAlchemyNormalization:
    """Alchemy asset transfers"""

    def _transfer(self, **overrides):
        transfer = {
            "category": "erc20",
            "hash": "0xhash1",
            "blockNum": "0x10",
            "from": EVM_WALLET.lower(),
            "to": "0xpool",
            "value": 1000.0,
            "asset": "DEGEN",
            "rawContract": {"address": DEGEN, "decimal": "0x12"},
            "metadata": {"blockTimestamp": "2024-01-01T00:00:00.000Z"},
        }
        transfer.update(overrides)
        return transfer

    def test_outgoing_transfer_is_sell_priced_from_map(self):
        normalizer = TradeNormalizer(EVM_WALLET, Chain.BASE, token_prices={DEGEN: 0.02})

        trade = normalizer.normalize_alchemy(self._transfer())

        assert trade.side == TradeSide.SELL
        assert trade.token_address == DEGEN
        assert trade.amount == 1000.0
        assert trade.value_usd == pytest.approx(20.0)
        assert trade.timestamp_ms == BASE_TIMESTAMP_MS
        assert trade.block_height == 16

    def test_incoming_transfer_is_buy_with_metadata_value(self):
        normalizer = TradeNormalizer(EVM_WALLET, Chain.BASE)
        transfer = self._transfer(
            **{"from": "0xpool", "to": EVM_WALLET.lower(),
               "metadata": {"blockTimestamp": "2024-01-01T00:00:00Z", "value": 50.0}}
        )

        trade = normalizer.normalize_alchemy(transfer)

        assert trade.side == TradeSide.BUY
        assert trade.value_usd == pytest.approx(50.0)
        assert trade.unit_price_usd == pytest.approx(0.05)

    def test_raw_value_used_when_value_missing(self):
        normalizer = TradeNormalizer(EVM_WALLET, Chain.BASE)
        transfer = self._transfer(
            value=None,
            rawContract={"address": DEGEN, "decimal": "0x12", "value": hex(5 * 10 ** 18)},
        )

        assert normalizer.normalize_alchemy(transfer).amount == pytest.approx(5.0)

    def test_base_asset_and_external_transfers_skipped(self):
        normalizer = TradeNormalizer(EVM_WALLET, Chain.BASE)

        assert normalizer.normalize_alchemy(self._transfer(category="external")) is None
        assert normalizer.normalize_alchemy(
            self._transfer(asset="WETH", rawContract={"address": WETH, "decimal": "0x12"})
        ) is None

    def test_missing_timestamp_yields_zero(self):
        normalizer = TradeNormalizer(EVM_WALLET, Chain.BASE)

        trade = normalizer.normalize_alchemy(self._transfer(metadata={}))

        assert trade.timestamp_ms == 0


# ============================================================================
# Validation and dedup
# ============================================================================

class TestValidation:
    """Counted rejection and quality reporting"""

    def test_validate_trade_rejects_bad_records(self):
        with pytest.raises(InvalidRecordError):
            validate_trade(TradeFactory(token_address=""))
        with pytest.raises(InvalidRecordError):
            validate_trade(TradeFactory(timestamp_ms=0))
        with pytest.raises(InvalidRecordError):
            validate_trade(TradeFactory(value_usd=-1.0))
        with pytest.raises(InvalidRecordError):
            validate_trade(TradeFactory(token_symbol="RAY-LP"))

    def test_invalid_records_are_counted_not_fatal(self):
        trades = [
            TradeFactory(value_usd=100.0),
            TradeFactory(timestamp_ms=0),
            TradeFactory(token_symbol="UNI-V2"),
        ]

        result = validate_trades(trades)

        assert len(result.valid) == 1
        assert result.invalid_count == 2
        assert result.quality.total_raw == 3
        assert result.quality.invalid_filtered == 2

    def test_quality_rates_over_valid_trades(self):
        trades = [
            TradeFactory(token_symbol="BONK", unit_price_usd=1.0, amount=100.0),
            TradeFactory(token_symbol=None, unit_price_usd=0.0, amount=50.0, value_usd=50.0),
        ]

        quality = validate_trades(trades).quality

        assert quality.symbol_rate == 50
        assert quality.price_rate == 50
        assert quality.amount_rate == 100
        assert quality.avg_trade_size == 75.0
        assert quality.to_dict()["dataCompleteness"] == {
            "symbolRate": 50, "priceRate": 50, "amountRate": 100,
        }

    def test_empty_input(self):
        quality = validate_trades([]).quality

        assert quality.total_raw == 0
        assert quality.symbol_rate == 0
        assert quality.avg_trade_size == 0.0


class TestDedup:
    """(hash, token) deduplication"""

    def test_same_hash_same_token_collapses(self):
        first = TradeFactory(hash="0xdup", timestamp_ms=BASE_TIMESTAMP_MS + 10)
        second = TradeFactory(hash="0xdup", timestamp_ms=BASE_TIMESTAMP_MS + 10, amount=1.0)

        unique = dedupe_trades([first, second])

        assert unique == [first]

    def test_same_hash_different_token_kept(self):
        trades = [
            TradeFactory(hash="0xmulti", token_address="A"),
            TradeFactory(hash="0xmulti", token_address="B"),
        ]

        assert len(dedupe_trades(trades)) == 2

    def test_output_is_time_ascending(self):
        late = TradeFactory(timestamp_ms=BASE_TIMESTAMP_MS + 5000)
        early = TradeFactory(timestamp_ms=BASE_TIMESTAMP_MS)

        assert dedupe_trades([late, early]) == [early, late]
