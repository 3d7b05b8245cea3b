"""
Request / response schemas for the analyze and analysis endpoints.

JSON bodies use camelCase; Python attributes stay snake_case.
"""
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from conviction.core.config import settings
from conviction.services.models import Archetype, Chain


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _require_address(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("address is required")
    return value


# ============================================================================
# TRANSACTIONS
# ============================================================================

class TransactionRequest(CamelModel):
    """Ingestion request"""
    address: str
    chain: Chain
    time_horizon_days: int = Field(settings.DEFAULT_TIME_HORIZON_DAYS, ge=1, le=settings.MAX_TIME_HORIZON_DAYS)
    min_trade_value: float = Field(settings.DEFAULT_MIN_TRADE_VALUE_USD, ge=0)

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _require_address(value)


class TradeSchema(CamelModel):
    hash: str
    timestamp: int
    token_address: str
    token_symbol: Optional[str] = None
    type: str
    amount: float
    price_usd: float
    value_usd: float
    block_number: int = 0


class DataCompleteness(CamelModel):
    symbol_rate: int
    price_rate: int
    amount_rate: int


class QualitySchema(CamelModel):
    total_raw: int
    invalid_filtered: int
    data_completeness: DataCompleteness
    avg_trade_size: float


class TransactionResponse(CamelModel):
    success: bool = True
    transactions: List[TradeSchema]
    count: int
    quality: QualitySchema
    provider: Optional[str] = None


# ============================================================================
# BATCH SCORING
# ============================================================================

class TradeLeg(CamelModel):
    """One entry or exit of a submitted position"""
    hash: str = ""
    timestamp: int
    amount: float = Field(..., ge=0)
    price_usd: float = Field(0.0, ge=0)
    value_usd: float = Field(0.0, ge=0)


class PositionIn(CamelModel):
    token_address: str
    token_symbol: Optional[str] = None
    entries: List[TradeLeg] = []
    exits: List[TradeLeg] = []
    total_invested: Optional[float] = None
    total_realized: Optional[float] = None


class BatchRequest(CamelModel):
    positions: List[PositionIn]
    chain: Chain
    reputation_score: Optional[float] = None


class EntryDetailsSchema(CamelModel):
    avg_price: float
    total_amount: float
    total_value: float
    first_entry: int


class ExitDetailsSchema(CamelModel):
    avg_price: float
    total_amount: float
    total_value: float
    last_exit: int


class CounterfactualSchema(CamelModel):
    would_be_value: float
    missed_gain_dollars: float


class PositionAnalysisSchema(CamelModel):
    token_address: str
    token_symbol: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    current_price: float
    price_change_24h: float
    entry_details: EntryDetailsSchema
    exit_details: Optional[ExitDetailsSchema] = None
    patience_tax: float
    max_missed_gain: float
    max_missed_gain_date: int
    realized_pnl: float = Field(..., alias="realizedPnL")
    realized_pnl_percent: float = Field(..., alias="realizedPnLPercent")
    unrealized_pnl: Optional[float] = Field(None, alias="unrealizedPnL")
    holding_period_days: int
    is_early_exit: bool
    counterfactual: Optional[CounterfactualSchema] = None


class ConvictionMetricsSchema(CamelModel):
    score: float = Field(..., ge=0, le=100)
    patience_tax: float = Field(0.0, ge=0)
    upside_capture: float = 0.0
    early_exits: int = 0
    conviction_wins: int = 0
    percentile: int = Field(0, ge=0, le=100)
    archetype: Archetype
    total_positions: int = 0
    avg_holding_period: float = 0.0
    win_rate: float = 0.0
    reputation_multiplier: float = 1.0
    weights_version: str = ""


class BatchResponse(CamelModel):
    success: bool = True
    positions: List[PositionAnalysisSchema]
    metrics: ConvictionMetricsSchema


# ============================================================================
# PRICES
# ============================================================================

class PriceRequest(CamelModel):
    token_address: str
    chain: Chain
    exit_price: Optional[float] = Field(None, gt=0)
    exit_timestamp: Optional[int] = Field(None, gt=0)
    position_size: Optional[float] = Field(None, gt=0, description="Realized USD value of the exit")


class PriceAnalysisSchema(CamelModel):
    current_price: float
    price_change_24h: float
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    last_updated: Optional[int] = None


class TokenMetadataSchema(CamelModel):
    address: str
    symbol: str
    name: str
    decimals: Optional[int] = None
    logo_uri: Optional[str] = None


class PatienceTaxSchema(CamelModel):
    patience_tax: float
    max_missed_gain: float
    max_missed_gain_date: int
    current_missed_gain: Optional[float] = None
    would_be_value: float


class PriceResponse(CamelModel):
    success: bool = True
    metadata: Optional[TokenMetadataSchema] = None
    price_analysis: Optional[PriceAnalysisSchema] = None
    patience_tax: Optional[PatienceTaxSchema] = None


# ============================================================================
# WALLET PIPELINE
# ============================================================================

class WalletAnalysisRequest(CamelModel):
    address: str
    chain: Chain
    time_horizon_days: int = Field(settings.DEFAULT_TIME_HORIZON_DAYS, ge=1, le=settings.MAX_TIME_HORIZON_DAYS)
    min_trade_value: float = Field(settings.DEFAULT_MIN_TRADE_VALUE_USD, ge=0)
    include_reputation: bool = False
    persist: bool = False

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _require_address(value)


class WalletAnalysisResponse(CamelModel):
    success: bool = True
    address: str
    chain: Chain
    time_horizon_days: int
    count: int
    quality: QualitySchema
    provider: Optional[str] = None
    positions: List[PositionAnalysisSchema]
    metrics: ConvictionMetricsSchema
    reputation_score: Optional[float] = None
    persisted: bool = False


# ============================================================================
# STORED ANALYSES
# ============================================================================

class IdentitySchema(CamelModel):
    ens_name: Optional[str] = None
    farcaster_username: Optional[str] = None
    ethos_score: Optional[float] = None


class SaveAnalysisRequest(CamelModel):
    address: str
    chain: Chain
    metrics: ConvictionMetricsSchema
    time_horizon: int = Field(settings.DEFAULT_TIME_HORIZON_DAYS, ge=1, le=settings.MAX_TIME_HORIZON_DAYS)
    identity: Optional[IdentitySchema] = None

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _require_address(value)
