from conviction.services.ingestion.normalizer import (
    QualityReport,
    TradeNormalizer,
    ValidationResult,
    correct_decimal_scale,
    dedupe_trades,
    is_base_asset,
    is_excluded_token,
    validate_trades,
)
from conviction.services.ingestion.sources import (
    AlchemyTradeSource,
    BirdeyeTradeSource,
    HeliusTradeSource,
    IngestionWindow,
    TradeSource,
)
from conviction.services.ingestion.orchestrator import (
    IngestionResult,
    TransactionIngestionService,
    build_trade_sources,
)

__all__ = [
    "QualityReport",
    "TradeNormalizer",
    "ValidationResult",
    "correct_decimal_scale",
    "dedupe_trades",
    "is_base_asset",
    "is_excluded_token",
    "validate_trades",
    "AlchemyTradeSource",
    "BirdeyeTradeSource",
    "HeliusTradeSource",
    "IngestionWindow",
    "TradeSource",
    "IngestionResult",
    "TransactionIngestionService",
    "build_trade_sources",
]
