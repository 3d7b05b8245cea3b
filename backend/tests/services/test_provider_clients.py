"""
Integration Tests for Provider Clients

Tests with mocked HTTP responses.
"""

import pytest
from unittest.mock import Mock, patch, AsyncMock
import httpx

from conviction.services.providers import (
    AlchemyClient,
    AuthenticationError,
    BirdeyeClient,
    CoinGeckoClient,
    DexScreenerClient,
    ErrorCategory,
    EthosClient,
    HeliusClient,
    JupiterClient,
    NetworkError,
    ProviderNotConfigured,
    RateLimitError,
    UpstreamUnavailable,
    categorize_error,
)


def _response(payload, status_code=200):
    return Mock(status_code=status_code, json=lambda: payload)


def _bad_json_response(status_code=200):
    def raise_value_error():
        raise ValueError("not json")
    return Mock(status_code=status_code, json=raise_value_error)


@pytest.fixture
def no_sleep():
    with patch("conviction.services.providers.base.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestErrorCategorization:

    @pytest.mark.parametrize("status,category", [
        (401, ErrorCategory.AUTHENTICATION),
        (403, ErrorCategory.AUTHENTICATION),
        (429, ErrorCategory.RATE_LIMIT),
        (500, ErrorCategory.API_ERROR),
        (503, ErrorCategory.API_ERROR),
        (404, ErrorCategory.INVALID_RESPONSE),
        (None, ErrorCategory.UNKNOWN),
    ])
    def test_categorize(self, status, category):
        assert categorize_error(status, {}) == category

    def test_retryable_categories(self):
        assert UpstreamUnavailable("x").is_retryable()
        assert RateLimitError("x").is_retryable()
        assert NetworkError("x").is_retryable()
        assert not AuthenticationError("x").is_retryable()
        assert not ProviderNotConfigured("x").is_retryable()

    def test_str_includes_provider_and_category(self):
        error = UpstreamUnavailable("bad gateway", provider="birdeye")
        assert str(error) == "[birdeye:api_error] bad gateway"


class TestBaseClientBehaviour:
    """Retry, error mapping and limiter via a concrete client"""

    @pytest.mark.asyncio
    async def test_retries_server_errors_then_raises(self, no_sleep):
        client = DexScreenerClient(max_retries=2)
        request = AsyncMock(return_value=_response({"message": "down"}, 502))

        with patch.object(client.client, 'request', new=request):
            with pytest.raises(UpstreamUnavailable) as exc_info:
                await client.get_token_pairs("0xabc")

        assert exc_info.value.status_code == 502
        assert request.await_count == 3
        assert no_sleep.await_count == 2

        await client.close()

    @pytest.mark.asyncio
    async def test_recovers_after_rate_limit(self, no_sleep):
        client = DexScreenerClient()
        request = AsyncMock(side_effect=[
            _response({"error": "slow down", "retry_after": 3}, 429),
            _response({"pairs": [{"pairAddress": "p1"}]}),
        ])

        with patch.object(client.client, 'request', new=request):
            pairs = await client.get_token_pairs("0xabc")

        assert pairs == [{"pairAddress": "p1"}]
        no_sleep.assert_awaited_once_with(3.0)

        await client.close()

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self, no_sleep):
        client = BirdeyeClient(api_key="bad")
        request = AsyncMock(return_value=_response({"message": "Unauthorized"}, 401))

        with patch.object(client.client, 'request', new=request):
            with pytest.raises(AuthenticationError):
                await client.get_price("mint")

        assert request.await_count == 1
        no_sleep.assert_not_called()

        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self, no_sleep):
        client = DexScreenerClient(max_retries=1)
        request = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))

        with patch.object(client.client, 'request', new=request):
            with pytest.raises(NetworkError):
                await client.get_token_pairs("0xabc")

        assert request.await_count == 2

        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_body_is_invalid_response(self, no_sleep):
        client = DexScreenerClient()

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_bad_json_response())):
            with pytest.raises(UpstreamUnavailable) as exc_info:
                await client.get_token_pairs("0xabc")

        assert exc_info.value.category == ErrorCategory.INVALID_RESPONSE
        no_sleep.assert_not_called()

        await client.close()

    @pytest.mark.asyncio
    async def test_local_rate_limit(self):
        client = DexScreenerClient(requests_per_minute=1, max_retries=0)

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response({"pairs": []}))):
            await client.get_token_pairs("0xabc")
            with pytest.raises(RateLimitError):
                await client.get_token_pairs("0xabc")

        await client.close()

    @pytest.mark.asyncio
    async def test_backoff_delay(self):
        client = DexScreenerClient()

        assert client._backoff_delay(1, NetworkError("x")) == pytest.approx(0.5)
        assert client._backoff_delay(2, NetworkError("x")) == pytest.approx(1.0)
        assert client._backoff_delay(1, RateLimitError("x", retry_after=4)) == pytest.approx(4.0)
        assert client._backoff_delay(10, NetworkError("x")) == pytest.approx(10.0)

        await client.close()


class TestBirdeyeClient:

    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        client = BirdeyeClient(api_key="")

        assert client.is_configured is False
        with pytest.raises(ProviderNotConfigured):
            await client.get_wallet_trades("wallet")

        await client.close()

    @pytest.mark.asyncio
    async def test_get_wallet_trades(self):
        client = BirdeyeClient(api_key="key")
        payload = {"success": True, "data": {"items": [{"txHash": "a"}, {"txHash": "b"}]}}
        request = AsyncMock(return_value=_response(payload))

        with patch.object(client.client, 'request', new=request):
            items = await client.get_wallet_trades("wallet", "base", before="z", limit=50)

        assert [i["txHash"] for i in items] == ["a", "b"]
        kwargs = request.call_args.kwargs
        assert kwargs["url"] == "/v1/wallet/tx_list"
        assert kwargs["params"] == {"wallet": "wallet", "tx_type": "swap", "limit": 50, "before": "z"}
        assert kwargs["headers"] == {"X-API-KEY": "key", "x-chain": "base"}

        await client.close()

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_is_empty(self):
        client = BirdeyeClient(api_key="key")

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response({"success": False}))):
            assert await client.get_wallet_trades("wallet") == []

        await client.close()

    @pytest.mark.asyncio
    async def test_get_price_history(self):
        client = BirdeyeClient(api_key="key")
        payload = {"success": True, "data": {"items": [
            {"unixTime": 1_704_067_200, "value": 1.5},
            {"unixTime": 1_704_070_800, "value": 2.0},
        ]}}
        request = AsyncMock(return_value=_response(payload))

        with patch.object(client.client, 'request', new=request):
            points = await client.get_price_history("mint", "solana", 1_704_067_200_000, 1_704_153_600_000)

        assert [(p.timestamp, p.price) for p in points] == [
            (1_704_067_200_000, 1.5), (1_704_070_800_000, 2.0),
        ]
        params = request.call_args.kwargs["params"]
        assert params["time_from"] == 1_704_067_200
        assert params["type"] == "1H"

        await client.close()


class TestHeliusClient:

    @pytest.mark.asyncio
    async def test_get_address_transactions(self):
        client = HeliusClient(api_key="key")
        request = AsyncMock(return_value=_response([{"signature": "s1"}]))

        with patch.object(client.client, 'request', new=request):
            txs = await client.get_address_transactions("wallet", before="s0", limit=10)

        assert txs == [{"signature": "s1"}]
        kwargs = request.call_args.kwargs
        assert kwargs["url"] == "/v0/addresses/wallet/transactions"
        assert kwargs["params"] == {"api-key": "key", "limit": 10, "before": "s0"}

        await client.close()

    @pytest.mark.asyncio
    async def test_non_list_payload_is_unavailable(self):
        client = HeliusClient(api_key="key")

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response({"error": "?"}))):
            with pytest.raises(UpstreamUnavailable):
                await client.get_address_transactions("wallet")

        await client.close()


class TestAlchemyClient:

    @pytest.mark.asyncio
    async def test_get_block_number(self):
        client = AlchemyClient(api_key="key")
        request = AsyncMock(return_value=_response({"jsonrpc": "2.0", "id": 1, "result": "0x1a"}))

        with patch.object(client.client, 'request', new=request):
            assert await client.get_block_number() == 26

        assert request.call_args.kwargs["json"]["method"] == "eth_blockNumber"
        await client.close()

    @pytest.mark.asyncio
    async def test_get_asset_transfers_query(self):
        client = AlchemyClient(api_key="key")
        request = AsyncMock(return_value=_response(
            {"jsonrpc": "2.0", "id": 1, "result": {"transfers": [{"hash": "0x1"}]}}
        ))

        with patch.object(client.client, 'request', new=request):
            transfers = await client.get_asset_transfers(100, from_address="0xwallet")

        assert transfers == [{"hash": "0x1"}]
        query = request.call_args.kwargs["json"]["params"][0]
        assert query["fromBlock"] == "0x64"
        assert query["fromAddress"] == "0xwallet"
        assert "toAddress" not in query
        assert query["category"] == ["erc20"]
        assert query["maxCount"] == hex(500)

        await client.close()

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        client = AlchemyClient(api_key="key")
        payload = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid params"}}

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response(payload))):
            with pytest.raises(UpstreamUnavailable):
                await client.get_block_number()

        await client.close()


class TestMarketDataClients:
    """Jupiter, DexScreener, CoinGecko and Ethos parsing"""

    @pytest.mark.asyncio
    async def test_jupiter_price(self):
        client = JupiterClient()
        payload = {"data": {"mint": {"id": "mint", "price": "187.25"}}}

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response(payload))):
            assert await client.get_price("mint") == pytest.approx(187.25)

        await client.close()

    @pytest.mark.asyncio
    async def test_dexscreener_picks_most_liquid_base_pair(self):
        client = DexScreenerClient()
        payload = {"pairs": [
            {"baseToken": {"address": "0xOTHER"}, "quoteToken": {"address": "0xabc"}, "priceUsd": "9"},
            {"baseToken": {"address": "0xABC", "symbol": "ABC"}, "priceUsd": "1.0",
             "liquidity": {"usd": 1000}},
            {"baseToken": {"address": "0xabc", "symbol": "ABC", "name": "Abc"}, "priceUsd": "1.1",
             "liquidity": {"usd": 50000}, "priceChange": {"h24": 12.5}},
        ]}

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response(payload))):
            price = await client.get_price("0xabc")
            metadata = await client.get_token_metadata("0xabc")

        assert price.current_price == pytest.approx(1.1)
        assert price.price_change_24h == pytest.approx(12.5)
        assert metadata.symbol == "ABC"
        assert metadata.name == "Abc"

        await client.close()

    @pytest.mark.asyncio
    async def test_dexscreener_quote_only_token_has_no_price(self):
        client = DexScreenerClient()
        payload = {"pairs": [
            {"baseToken": {"address": "0xother"}, "quoteToken": {"address": "0xabc", "symbol": "ABC"},
             "priceUsd": "9"},
        ]}

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response(payload))):
            assert await client.get_price("0xabc") is None
            assert (await client.get_token_metadata("0xabc")).symbol == "ABC"

        await client.close()

    @pytest.mark.asyncio
    async def test_coingecko_market_chart_range(self):
        client = CoinGeckoClient()
        payload = {"prices": [[1_704_067_200_000, 0.5], [1_704_070_800_000, 0.75]]}
        request = AsyncMock(return_value=_response(payload))

        with patch.object(client.client, 'request', new=request):
            points = await client.get_market_chart_range("base", "0xabc", 1_704_067_200_000, 1_704_153_600_000)

        assert [p.price for p in points] == [0.5, 0.75]
        assert request.call_args.kwargs["url"] == "/coins/base/contract/0xabc/market_chart/range"
        assert request.call_args.kwargs["params"]["to"] == 1_704_153_600

        await client.close()

    @pytest.mark.asyncio
    async def test_ethos_score(self):
        client = EthosClient()

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response({"score": 1850}))):
            assert await client.get_score_by_address("0xabc") == 1850.0

        with patch.object(client.client, 'request', new=AsyncMock(return_value=_response({}))):
            assert await client.get_score_by_address("0xabc") is None

        await client.close()
