"""
Transaction Normalizer

Converts raw provider records (Birdeye swaps, Helius enhanced transactions,
Alchemy asset transfers) into canonical ``Trade`` records.

Key behavior:
- Side inference from base-asset flow when the provider gives no label;
  token-to-token swaps are dropped (no base leg, no USD anchor)
- Magnitude-based decimal correction for raw-unit leakage (approximate)
- LP / synthetic token exclusion by symbol pattern
- Validation with counted (not silent) rejection and a quality report
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from loguru import logger

from conviction.core.config import settings
from conviction.services.models import Chain, Trade, TradeSide
from conviction.services.providers.errors import InvalidRecordError


# ============================================================================
# KNOWN ASSETS
# ============================================================================

SOL_MINT = "So11111111111111111111111111111111111111112"

# mint -> (symbol, decimals)
SOLANA_BASE_TOKENS: Dict[str, tuple] = {
    SOL_MINT: ("SOL", 9),
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": ("USDC", 6),
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": ("USDT", 6),
    "mSoLzYq7mSqcxt3ED4PSc69RzY83W95G5p7s8pAnJdV": ("MSOL", 9),
    "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn": ("JITOSOL", 9),
    "7dHbWXmci3dT8UFYWYZweBLXgycu7Y3iL6trKn1Y7ARj": ("STSOL", 9),
}

BASE_CHAIN_BASE_TOKENS: Dict[str, tuple] = {
    "0x0000000000000000000000000000000000000000": ("ETH", 18),
    "0x4200000000000000000000000000000000000006": ("WETH", 18),
    "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913": ("USDC", 6),
    "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca": ("USDBC", 6),
    "0x50c5725949a6f0c72e6c4a641f24049a917db0cb": ("DAI", 18),
}

BASE_SYMBOLS = {
    Chain.SOLANA: {"SOL", "WSOL", "USDC", "USDT", "MSOL", "JITOSOL", "STSOL"},
    Chain.BASE: {"ETH", "WETH", "USDC", "USDBC", "DAI"},
}

STABLECOIN_SYMBOLS = {"USDC", "USDT", "USDBC", "DAI"}

LP_PATTERNS = ("-LP", "LP-", "UNI-V2", "CAKE-LP", "SLP")


def _base_tokens(chain: Chain) -> Dict[str, tuple]:
    return SOLANA_BASE_TOKENS if chain == Chain.SOLANA else BASE_CHAIN_BASE_TOKENS


def _norm_address(chain: Chain, address: Optional[str]) -> str:
    address = address or ""
    # EVM addresses are case-insensitive, Solana mints are not
    return address.lower() if chain == Chain.BASE else address


def is_base_asset(chain: Chain, address: Optional[str] = None, symbol: Optional[str] = None) -> bool:
    """True for the native coin, wrapped native coin, LSTs and allow-listed stablecoins"""
    if address and _norm_address(chain, address) in _base_tokens(chain):
        return True
    return bool(symbol) and symbol.upper() in BASE_SYMBOLS[chain]


def is_stablecoin(chain: Chain, address: Optional[str] = None, symbol: Optional[str] = None) -> bool:
    if address:
        entry = _base_tokens(chain).get(_norm_address(chain, address))
        if entry:
            return entry[0] in STABLECOIN_SYMBOLS
    return bool(symbol) and symbol.upper() in STABLECOIN_SYMBOLS


def base_asset_decimals(chain: Chain, address: str) -> Optional[int]:
    entry = _base_tokens(chain).get(_norm_address(chain, address))
    return entry[1] if entry else None


def is_excluded_token(symbol: Optional[str]) -> bool:
    """LP and synthetic tokens matched by symbol substring"""
    if not symbol:
        return False
    upper = symbol.upper()
    return any(pattern in upper for pattern in LP_PATTERNS)


def correct_decimal_scale(
    amount: float,
    decimals: int,
    threshold: Optional[float] = None,
) -> float:
    """
    Undo raw-unit leakage using a magnitude heuristic.

    Amounts above ``threshold`` are assumed to be raw integer units and are
    divided by ``10 ** decimals``. This is approximate: a genuinely huge
    human-unit amount would be wrongly rescaled.
    """
    threshold = settings.DECIMAL_CORRECTION_THRESHOLD if threshold is None else threshold
    if amount > threshold:
        return amount / (10 ** decimals)
    return amount


def _to_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


def _parse_iso_ms(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return 0


# ============================================================================
# VALIDATION
# ============================================================================

@dataclass
class QualityReport:
    """Data-quality summary for one ingestion run"""
    total_raw: int = 0
    invalid_filtered: int = 0
    symbol_rate: int = 0
    price_rate: int = 0
    amount_rate: int = 0
    avg_trade_size: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRaw": self.total_raw,
            "invalidFiltered": self.invalid_filtered,
            "dataCompleteness": {
                "symbolRate": self.symbol_rate,
                "priceRate": self.price_rate,
                "amountRate": self.amount_rate,
            },
            "avgTradeSize": self.avg_trade_size,
        }


@dataclass
class ValidationResult:
    valid: List[Trade] = field(default_factory=list)
    invalid_count: int = 0
    quality: QualityReport = field(default_factory=QualityReport)


def validate_trade(trade: Trade) -> None:
    """
    Raise InvalidRecordError for a trade that cannot be used.

    Raises:
        InvalidRecordError: empty token address, non-positive timestamp,
            negative USD value, or an LP/synthetic token
    """
    if not trade.token_address:
        raise InvalidRecordError("missing token address", trade.hash)
    if trade.timestamp_ms <= 0:
        raise InvalidRecordError("non-positive timestamp", trade.hash)
    if trade.value_usd < 0:
        raise InvalidRecordError("negative USD value", trade.hash)
    if is_excluded_token(trade.token_symbol):
        raise InvalidRecordError(f"excluded token {trade.token_symbol}", trade.hash)


def validate_trades(trades: List[Trade]) -> ValidationResult:
    """Filter invalid trades and compute completeness rates over the valid set"""
    result = ValidationResult()
    with_symbols = with_prices = with_amounts = 0
    total_value = 0.0

    for trade in trades:
        try:
            validate_trade(trade)
        except InvalidRecordError as e:
            result.invalid_count += 1
            logger.debug(f"Invalid trade {e.record_hash}: {e}")
            continue

        if trade.token_symbol:
            with_symbols += 1
        if trade.unit_price_usd > 0:
            with_prices += 1
        if trade.amount > 0:
            with_amounts += 1
        total_value += trade.value_usd
        result.valid.append(trade)

    denominator = max(len(result.valid), 1)
    result.quality = QualityReport(
        total_raw=len(trades),
        invalid_filtered=result.invalid_count,
        symbol_rate=round(with_symbols / denominator * 100),
        price_rate=round(with_prices / denominator * 100),
        amount_rate=round(with_amounts / denominator * 100),
        avg_trade_size=round(total_value / len(result.valid), 2) if result.valid else 0.0,
    )
    return result


def dedupe_trades(trades: Iterable[Trade]) -> List[Trade]:
    """Keep the first trade per (hash, token address), ordered by time"""
    seen = set()
    unique = []
    for trade in trades:
        if trade.dedup_key in seen:
            continue
        seen.add(trade.dedup_key)
        unique.append(trade)
    return sorted(unique, key=lambda t: t.timestamp_ms)


# ============================================================================
# PER-PROVIDER NORMALIZERS
# ============================================================================

class TradeNormalizer:
    """
    Raw provider record -> zero or one Trade for one wallet on one chain.

    Prices needed for valuation are supplied up front (the native asset's
    USD price, and optionally per-token prices and symbols) so that
    normalization itself stays synchronous and free of I/O.
    """

    def __init__(
        self,
        wallet: str,
        chain: Chain,
        min_trade_value_usd: float = 0.0,
        base_asset_price_usd: float = 0.0,
        token_prices: Optional[Dict[str, float]] = None,
        token_symbols: Optional[Dict[str, str]] = None,
    ):
        self.wallet = wallet
        self.chain = Chain(chain)
        self.min_trade_value_usd = min_trade_value_usd
        self.base_asset_price_usd = base_asset_price_usd
        self.token_prices = token_prices or {}
        self.token_symbols = token_symbols or {}

    def _base_leg_usd(self, address: Optional[str], symbol: Optional[str], amount: float) -> float:
        if is_stablecoin(self.chain, address, symbol):
            return amount
        return amount * self.base_asset_price_usd

    def _accept(self, trade: Trade) -> Optional[Trade]:
        if trade.value_usd < self.min_trade_value_usd:
            logger.debug(
                f"Skipping {trade.hash}: ${trade.value_usd:.2f} below "
                f"minimum ${self.min_trade_value_usd:.2f}"
            )
            return None
        return trade

    # ------------------------------------------------------------------------
    # Birdeye
    # ------------------------------------------------------------------------

    def normalize_birdeye(self, item: Dict[str, Any]) -> Optional[Trade]:
        """
        Normalize one Birdeye swap item.

        The explicit ``side`` label is honored when present; otherwise the
        side is inferred from which leg is a base asset.
        """
        from_leg = item.get("from") or {}
        to_leg = item.get("to") or {}
        if not from_leg or not to_leg:
            return None

        from_base = is_base_asset(self.chain, from_leg.get("address"), from_leg.get("symbol"))
        to_base = is_base_asset(self.chain, to_leg.get("address"), to_leg.get("symbol"))

        if from_base == to_base:
            logger.debug(f"Skipping token-to-token swap {item.get('txHash')}")
            return None

        # The traded token is always the non-base leg
        target = to_leg if from_base else from_leg
        value_leg = from_leg if from_base else to_leg

        label = str(item.get("side") or "").lower()
        is_buy = label == "buy" if label in ("buy", "sell") else from_base

        value_amount = self._leg_amount(value_leg)
        value_price = _to_float(value_leg.get("priceUsd") or value_leg.get("price"))
        if value_price > 0:
            value_usd = value_amount * value_price
        else:
            value_usd = self._base_leg_usd(
                value_leg.get("address"), value_leg.get("symbol"), value_amount
            )

        amount = self._leg_amount(target)
        unit_price = _to_float(target.get("priceUsd") or target.get("price"))
        if unit_price <= 0 and amount > 0:
            unit_price = value_usd / amount

        return self._accept(Trade(
            hash=item.get("txHash") or "",
            timestamp_ms=int(_to_float(item.get("blockUnixTime")) * 1000),
            token_address=target.get("address") or "",
            token_symbol=target.get("symbol"),
            side=TradeSide.BUY if is_buy else TradeSide.SELL,
            amount=amount,
            unit_price_usd=unit_price,
            value_usd=value_usd,
            block_height=int(item.get("slot") or item.get("blockNumber") or 0),
        ))

    @staticmethod
    def _leg_amount(leg: Dict[str, Any]) -> float:
        if leg.get("uiAmount") is not None:
            return _to_float(leg["uiAmount"])
        raw = _to_float(leg.get("amount"))
        decimals = leg.get("decimals")
        return correct_decimal_scale(raw, int(decimals)) if decimals is not None else raw

    # ------------------------------------------------------------------------
    # Helius
    # ------------------------------------------------------------------------

    def normalize_helius(self, tx: Dict[str, Any]) -> Optional[Trade]:
        """
        Normalize one Helius enhanced transaction.

        The traded token is the first non-base token transfer; the base leg
        is a base-token transfer, or failing that the largest native SOL
        transfer touching the wallet (lamports).
        """
        transfers = tx.get("tokenTransfers") or []
        fee_payer = tx.get("feePayer")

        token_transfer = next(
            (t for t in transfers if t.get("mint") and not is_base_asset(self.chain, t.get("mint"))),
            None,
        )
        if token_transfer is None:
            return None

        base_transfer = next(
            (t for t in transfers if is_base_asset(self.chain, t.get("mint"))),
            None,
        )

        if base_transfer is not None:
            mint = base_transfer["mint"]
            decimals = base_asset_decimals(self.chain, mint) or 9
            base_amount = correct_decimal_scale(_to_float(base_transfer.get("tokenAmount")), decimals)
            value_usd = self._base_leg_usd(mint, None, base_amount)
        else:
            native = [
                n for n in tx.get("nativeTransfers") or []
                if self.wallet in (n.get("fromUserAccount"), n.get("toUserAccount"))
            ]
            if not native:
                logger.debug(f"Skipping {tx.get('signature')}: no base-asset leg")
                return None
            lamports = max(_to_float(n.get("amount")) for n in native)
            value_usd = (lamports / 1e9) * self.base_asset_price_usd

        receiver = token_transfer.get("toUserAccount")
        is_buy = receiver == self.wallet or (receiver is not None and receiver == fee_payer)

        amount = _to_float(token_transfer.get("tokenAmount"))
        mint = token_transfer["mint"]
        symbol = token_transfer.get("tokenSymbol") or self.token_symbols.get(mint)

        return self._accept(Trade(
            hash=tx.get("signature") or "",
            timestamp_ms=int(_to_float(tx.get("timestamp")) * 1000),
            token_address=mint,
            token_symbol=symbol,
            side=TradeSide.BUY if is_buy else TradeSide.SELL,
            amount=amount,
            unit_price_usd=value_usd / amount if amount > 0 else 0.0,
            value_usd=value_usd,
            block_height=int(tx.get("slot") or 0),
        ))

    # ------------------------------------------------------------------------
    # Alchemy
    # ------------------------------------------------------------------------

    def normalize_alchemy(self, transfer: Dict[str, Any]) -> Optional[Trade]:
        """
        Normalize one Alchemy asset transfer.

        Outgoing transfers are sells, incoming are buys. Plain ETH sends and
        transfers of base assets themselves are not positions.
        """
        if transfer.get("category") == "external":
            return None

        raw_contract = transfer.get("rawContract") or {}
        token_address = (raw_contract.get("address") or "").lower()
        wallet = self.wallet.lower()
        if not token_address or token_address == wallet:
            return None
        if is_base_asset(self.chain, token_address, transfer.get("asset")):
            return None

        decimals = None
        if raw_contract.get("decimal"):
            decimals = int(str(raw_contract["decimal"]), 0)

        if transfer.get("value") is not None:
            amount = _to_float(transfer["value"])
            if decimals is not None:
                amount = correct_decimal_scale(amount, decimals)
        elif raw_contract.get("value") and decimals is not None:
            amount = int(str(raw_contract["value"]), 0) / (10 ** decimals)
        else:
            return None

        metadata = transfer.get("metadata") or {}
        value_usd = _to_float(metadata.get("value"))
        if value_usd > 0 and amount > 0:
            unit_price = value_usd / amount
        else:
            unit_price = self.token_prices.get(token_address, 0.0)
            value_usd = unit_price * amount

        is_sell = (transfer.get("from") or "").lower() == wallet
        block_num = transfer.get("blockNum")

        return self._accept(Trade(
            hash=transfer.get("hash") or "",
            timestamp_ms=_parse_iso_ms(metadata.get("blockTimestamp")),
            token_address=token_address,
            token_symbol=transfer.get("asset") or self.token_symbols.get(token_address),
            side=TradeSide.SELL if is_sell else TradeSide.BUY,
            amount=amount,
            unit_price_usd=unit_price,
            value_usd=value_usd,
            block_height=int(str(block_num), 0) if block_num else 0,
        ))
