"""
Trade Sources

One ``TradeSource`` per transaction-history provider. Each source pages or
windows its provider down to the lookback cutoff and returns normalized
(not yet validated) trades. Provider failures propagate as UpstreamError so
the orchestrator can fall back.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Tuple

from loguru import logger

from conviction.core.config import settings
from conviction.services.ingestion.normalizer import TradeNormalizer, is_base_asset
from conviction.services.market_data import MarketDataService
from conviction.services.models import Chain, Trade, MS_PER_DAY
from conviction.services.providers import AlchemyClient, BirdeyeClient, HeliusClient


@dataclass(frozen=True)
class IngestionWindow:
    """Lookback boundary and value floor for one ingestion run"""
    chain: Chain
    cutoff_ms: int
    min_trade_value_usd: float = 0.0

    @classmethod
    def from_horizon(
        cls, chain: Chain, time_horizon_days: int, min_trade_value_usd: float, now_ms: Optional[int] = None
    ) -> "IngestionWindow":
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        return cls(
            chain=Chain(chain),
            cutoff_ms=now_ms - time_horizon_days * MS_PER_DAY,
            min_trade_value_usd=min_trade_value_usd,
        )


class TradeSource(ABC):
    """Capability interface: fetch a wallet's trades inside a window"""

    name = "source"
    chains: Tuple[Chain, ...] = (Chain.SOLANA, Chain.BASE)

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """False when the backing provider has no credentials"""

    def supports(self, chain: Chain) -> bool:
        return Chain(chain) in self.chains

    @abstractmethod
    async def fetch_trades(self, wallet: str, window: IngestionWindow) -> List[Trade]:
        """Normalized trades newer than the window cutoff"""


class BirdeyeTradeSource(TradeSource):
    """Birdeye parsed wallet swaps, paged by transaction hash"""

    name = "birdeye"

    def __init__(self, client: BirdeyeClient, market: MarketDataService):
        self.client = client
        self.market = market

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def fetch_trades(self, wallet: str, window: IngestionWindow) -> List[Trade]:
        items: List[Dict[str, Any]] = []
        before = None
        page_size = settings.INGESTION_PAGE_SIZE

        for _ in range(settings.INGESTION_MAX_PAGES):
            batch = await self.client.get_wallet_trades(
                wallet, window.chain.value, before=before, limit=page_size
            )
            if not batch:
                break

            reached_cutoff = False
            for item in batch:
                if int(float(item.get("blockUnixTime") or 0) * 1000) < window.cutoff_ms:
                    reached_cutoff = True
                    break
                items.append(item)

            if reached_cutoff or len(batch) < page_size:
                break
            before = batch[-1].get("txHash")
        else:
            logger.info(f"birdeye: page cap ({settings.INGESTION_MAX_PAGES}) reached for {wallet}")

        if not items:
            return []

        normalizer = TradeNormalizer(
            wallet,
            window.chain,
            min_trade_value_usd=window.min_trade_value_usd,
            base_asset_price_usd=await self.market.get_base_asset_price(window.chain),
        )
        trades = [t for t in (normalizer.normalize_birdeye(i) for i in items) if t]
        logger.debug(f"birdeye: {len(items)} swaps -> {len(trades)} trades for {wallet}")
        return trades


class HeliusTradeSource(TradeSource):
    """Helius enhanced transactions, paged by signature cursor"""

    name = "helius"
    chains = (Chain.SOLANA,)

    def __init__(self, client: HeliusClient, market: MarketDataService):
        self.client = client
        self.market = market

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def fetch_trades(self, wallet: str, window: IngestionWindow) -> List[Trade]:
        records: List[Dict[str, Any]] = []
        before = None
        page_size = settings.INGESTION_PAGE_SIZE

        for _ in range(settings.INGESTION_MAX_PAGES):
            batch = await self.client.get_address_transactions(wallet, before=before, limit=page_size)
            if not batch:
                break

            reached_cutoff = False
            for tx in batch:
                if int(float(tx.get("timestamp") or 0) * 1000) < window.cutoff_ms:
                    reached_cutoff = True
                    break
                records.append(tx)

            if reached_cutoff or len(batch) < page_size:
                break
            before = batch[-1].get("signature")
        else:
            logger.info(f"helius: page cap ({settings.INGESTION_MAX_PAGES}) reached for {wallet}")

        if not records:
            return []

        # Resolve symbols Helius left blank
        unnamed = {
            t["mint"]
            for tx in records
            for t in tx.get("tokenTransfers") or []
            if t.get("mint") and not t.get("tokenSymbol") and not is_base_asset(window.chain, t["mint"])
        }
        symbols: Dict[str, str] = {}
        if unnamed:
            metadata = await self.market.get_metadata_many(unnamed, window.chain)
            symbols = {mint: meta.symbol for mint, meta in metadata.items() if meta}

        normalizer = TradeNormalizer(
            wallet,
            window.chain,
            min_trade_value_usd=window.min_trade_value_usd,
            base_asset_price_usd=await self.market.get_base_asset_price(window.chain),
            token_symbols=symbols,
        )
        trades = [t for t in (normalizer.normalize_helius(tx) for tx in records) if t]
        logger.debug(f"helius: {len(records)} transactions -> {len(trades)} trades for {wallet}")
        return trades


class AlchemyTradeSource(TradeSource):
    """
    Alchemy asset transfers over a block window.

    The cutoff time is converted to an approximate block height from the
    average block time, then outgoing and incoming transfers are fetched
    in parallel and unioned by transaction hash.
    """

    name = "alchemy"
    chains = (Chain.BASE,)

    def __init__(self, client: AlchemyClient, market: MarketDataService):
        self.client = client
        self.market = market

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    @staticmethod
    def cutoff_block(latest_block: int, cutoff_ms: int, now_ms: int) -> int:
        seconds_ago = max(0, now_ms - cutoff_ms) / 1000
        return max(0, latest_block - int(seconds_ago // settings.BASE_AVG_BLOCK_TIME_SECONDS))

    async def fetch_trades(self, wallet: str, window: IngestionWindow) -> List[Trade]:
        latest = await self.client.get_block_number()
        from_block = self.cutoff_block(latest, window.cutoff_ms, int(time.time() * 1000))

        outgoing, incoming = await asyncio.gather(
            self.client.get_asset_transfers(from_block, from_address=wallet),
            self.client.get_asset_transfers(from_block, to_address=wallet),
        )

        transfers: List[Dict[str, Any]] = []
        seen_hashes = set()
        for transfer in list(outgoing) + list(incoming):
            tx_hash = transfer.get("hash")
            if tx_hash in seen_hashes:
                continue
            seen_hashes.add(tx_hash)
            transfers.append(transfer)

        if not transfers:
            return []

        # Price transfers that carry no USD value
        unpriced = {
            (t.get("rawContract") or {}).get("address", "").lower()
            for t in transfers
            if not (t.get("metadata") or {}).get("value")
        }
        unpriced.discard("")
        prices: Dict[str, float] = {}
        if unpriced:
            quotes = await self.market.get_prices_many(unpriced, window.chain)
            prices = {addr: q.current_price for addr, q in quotes.items() if q}

        normalizer = TradeNormalizer(
            wallet,
            window.chain,
            min_trade_value_usd=window.min_trade_value_usd,
            token_prices=prices,
        )

        trades = []
        for transfer in transfers:
            trade = normalizer.normalize_alchemy(transfer)
            # Block window is approximate; timestamps of 0 are left for validation
            if trade and (trade.timestamp_ms == 0 or trade.timestamp_ms >= window.cutoff_ms):
                trades.append(trade)

        logger.debug(
            f"alchemy: blocks {from_block}..{latest}, {len(transfers)} transfers "
            f"-> {len(trades)} trades for {wallet}"
        )
        return trades
