"""
Domain Models

Trades, positions and the derived conviction records that flow through the
ingestion -> aggregation -> patience tax -> scoring pipeline.
"""

import enum
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any


class Chain(str, enum.Enum):
    """Supported chains"""
    SOLANA = "solana"
    BASE = "base"


class TradeSide(str, enum.Enum):
    """Direction of a trade relative to the analyzed wallet"""
    BUY = "buy"
    SELL = "sell"


class Archetype(str, enum.Enum):
    """Behavioral archetype labels"""
    IRON_PILLAR = "Iron Pillar"
    PROFIT_PHANTOM = "Profit Phantom"
    EXIT_VOYAGER = "Exit Voyager"
    DIAMOND_HAND = "Diamond Hand"


MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class Trade:
    """
    One on-chain swap leg relevant to the wallet.

    Amounts are human units (already decimal-normalized). Instances are
    immutable; enrichment always builds new records.
    """
    hash: str
    timestamp_ms: int
    token_address: str
    side: TradeSide
    amount: float
    unit_price_usd: float
    value_usd: float
    block_height: int = 0
    token_symbol: Optional[str] = None

    @property
    def dedup_key(self) -> tuple:
        return (self.hash, self.token_address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp_ms,
            "tokenAddress": self.token_address,
            "tokenSymbol": self.token_symbol,
            "type": self.side.value,
            "amount": self.amount,
            "priceUsd": self.unit_price_usd,
            "valueUsd": self.value_usd,
            "blockNumber": self.block_height,
        }


@dataclass
class PatienceTaxAnalysis:
    """Counterfactual "had the trader not sold" result for one position"""
    patience_tax_usd: float
    max_missed_gain_pct: float
    max_missed_gain_timestamp: int
    would_be_value_usd: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Position:
    """All trades for one (wallet, token) pair inside the analysis window"""
    token_address: str
    token_symbol: Optional[str] = None
    entries: List[Trade] = field(default_factory=list)
    exits: List[Trade] = field(default_factory=list)
    avg_entry_price: float = 0.0
    total_invested_usd: float = 0.0
    total_realized_usd: float = 0.0
    remaining_balance: float = 0.0
    is_active: bool = False

    # Filled in by the patience tax engine
    patience_tax: Optional[PatienceTaxAnalysis] = None

    @property
    def total_entry_amount(self) -> float:
        return sum(t.amount for t in self.entries)

    @property
    def total_exit_amount(self) -> float:
        return sum(t.amount for t in self.exits)

    @property
    def last_exit(self) -> Optional[Trade]:
        return self.exits[-1] if self.exits else None

    @property
    def first_entry(self) -> Optional[Trade]:
        return self.entries[0] if self.entries else None

    @property
    def realized_pnl_usd(self) -> float:
        return self.total_realized_usd - self.total_invested_usd


@dataclass
class EntryDetails:
    avg_price: float
    total_amount: float
    total_value: float
    first_entry: int


@dataclass
class ExitDetails:
    avg_price: float
    total_amount: float
    total_value: float
    last_exit: int


@dataclass
class Counterfactual:
    would_be_value: float
    missed_gain_dollars: float


@dataclass
class PositionAnalysis:
    """Caller-facing view of an analyzed position"""
    token_address: str
    token_symbol: Optional[str]
    metadata: Optional[Dict[str, Any]]
    current_price: float
    price_change_24h: float
    entry_details: EntryDetails
    exit_details: Optional[ExitDetails]
    patience_tax: float
    max_missed_gain: float
    max_missed_gain_date: int
    realized_pnl: float
    realized_pnl_percent: float
    unrealized_pnl: Optional[float]
    holding_period_days: int
    is_early_exit: bool
    counterfactual: Optional[Counterfactual]
    total_invested: float = 0.0


@dataclass
class ConvictionMetrics:
    """Wallet-level conviction result for one analysis run"""
    score: float
    patience_tax: float
    upside_capture: float
    early_exits: int
    conviction_wins: int
    percentile: int
    archetype: Archetype
    total_positions: int
    avg_holding_period: float
    win_rate: float
    reputation_multiplier: float = 1.0
    weights_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["archetype"] = self.archetype.value
        return data
