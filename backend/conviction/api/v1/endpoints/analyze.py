"""
Analyze API Endpoints

Stateless analysis: ingestion, batch scoring, single-token price analysis
and the full wallet pipeline.
"""

import asyncio
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from conviction.api.deps import (
    get_batch_service, get_ingestion_service, get_market_data, get_wallet_service
)
from conviction.db.session import get_db
from conviction.schemas.analysis import (
    BatchRequest, BatchResponse, PositionIn, PriceRequest, PriceResponse, TradeLeg,
    TransactionRequest, TransactionResponse, WalletAnalysisRequest, WalletAnalysisResponse
)
from conviction.services.analysis.batch import BatchAnalysisService
from conviction.services.analysis.pipeline import WalletAnalysisService
from conviction.services.ingestion import TransactionIngestionService
from conviction.services.market_data import MarketDataService
from conviction.services.models import Position, Trade, TradeSide
from conviction.services.providers import AllProvidersExhausted


router = APIRouter(prefix="/analyze", tags=["analyze"])


def _leg_to_trade(leg: TradeLeg, token_address: str, token_symbol: Optional[str], side: TradeSide) -> Trade:
    value = leg.value_usd or leg.amount * leg.price_usd
    price = leg.price_usd or (value / leg.amount if leg.amount > 0 else 0.0)
    return Trade(
        hash=leg.hash,
        timestamp_ms=leg.timestamp,
        token_address=token_address,
        side=side,
        amount=leg.amount,
        unit_price_usd=price,
        value_usd=value,
        token_symbol=token_symbol,
    )


def position_from_request(body: PositionIn) -> Optional[Position]:
    """
    Build a domain Position from a submitted one.

    Totals supplied by the caller win; missing ones are summed from the
    legs. Remaining balance and the active flag are always derived from the
    legs. Returns None for a position with no entries or no invested value,
    the same ones the aggregator drops.
    """
    entries = sorted(
        (_leg_to_trade(leg, body.token_address, body.token_symbol, TradeSide.BUY) for leg in body.entries),
        key=lambda t: t.timestamp_ms,
    )
    exits = sorted(
        (_leg_to_trade(leg, body.token_address, body.token_symbol, TradeSide.SELL) for leg in body.exits),
        key=lambda t: t.timestamp_ms,
    )

    total_invested = body.total_invested
    if total_invested is None:
        total_invested = sum(t.value_usd for t in entries)
    total_realized = body.total_realized
    if total_realized is None:
        total_realized = sum(t.value_usd for t in exits)

    if not entries or total_invested <= 0:
        return None

    entry_amount = sum(t.amount for t in entries)
    remaining = entry_amount - sum(t.amount for t in exits)

    return Position(
        token_address=body.token_address,
        token_symbol=body.token_symbol,
        entries=entries,
        exits=exits,
        avg_entry_price=total_invested / entry_amount if entry_amount > 0 else 0.0,
        total_invested_usd=total_invested,
        total_realized_usd=total_realized,
        remaining_balance=remaining,
        is_active=remaining > 0,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/transactions", response_model=TransactionResponse, response_model_by_alias=True)
async def analyze_transactions(
    request: TransactionRequest,
    ingestion: TransactionIngestionService = Depends(get_ingestion_service),
):
    """
    Fetch, normalize and validate a wallet's trades.

    **Returns:**
    - Time-ordered trades plus a data quality report. A zero count with a
      successful response means nothing qualified; a 502 means every
      provider failed.
    """
    try:
        result = await ingestion.ingest(
            request.address,
            request.chain,
            time_horizon_days=request.time_horizon_days,
            min_trade_value=request.min_trade_value,
        )
    except AllProvidersExhausted as e:
        raise HTTPException(status_code=502, detail=f"Transaction ingestion failed: {e}")
    except Exception as e:
        logger.exception(f"Transaction ingestion error for {request.address}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch transactions")

    return TransactionResponse.model_validate(result.to_dict())


@router.post("/batch", response_model=BatchResponse, response_model_by_alias=True)
async def analyze_batch(
    request: BatchRequest,
    batch: BatchAnalysisService = Depends(get_batch_service),
):
    """
    Score a set of already-aggregated positions.

    **Parameters:**
    - `positions`: Positions with entries and exits
    - `chain`: solana or base
    - `reputationScore`: Optional external score used as a multiplier
    """
    positions: List[Position] = []
    for submitted in request.positions:
        position = position_from_request(submitted)
        if position is None:
            logger.debug(f"Skipping {submitted.token_address}: no cost basis")
            continue
        positions.append(position)

    try:
        result = await batch.analyze(
            positions, request.chain, reputation_score=request.reputation_score
        )
    except Exception as e:
        logger.exception(f"Batch analysis error: {e}")
        raise HTTPException(status_code=500, detail="Batch analysis failed")

    return BatchResponse(
        positions=[asdict(p) for p in result.positions],
        metrics=result.metrics.to_dict(),
    )


@router.post("/prices", response_model=PriceResponse, response_model_by_alias=True)
async def analyze_prices(
    request: PriceRequest,
    market: MarketDataService = Depends(get_market_data),
    batch: BatchAnalysisService = Depends(get_batch_service),
):
    """
    Token metadata, current price and, when an exit is given, its patience tax.

    Patience tax is computed only when `exitPrice`, `exitTimestamp` and
    `positionSize` are all present.
    """
    try:
        metadata, price = await asyncio.gather(
            market.get_token_metadata(request.token_address, request.chain),
            market.get_price(request.token_address, request.chain),
        )

        patience = None
        if request.exit_price and request.exit_timestamp and request.position_size:
            analysis = await batch.engine.analyze_exit(
                request.token_address,
                request.chain,
                request.exit_price,
                request.exit_timestamp,
                request.position_size,
            )
            current_missed_gain = None
            if price is not None and price.current_price > 0:
                current_missed_gain = (price.current_price / request.exit_price - 1) * 100
            patience = {
                "patience_tax": analysis.patience_tax_usd,
                "max_missed_gain": analysis.max_missed_gain_pct,
                "max_missed_gain_date": analysis.max_missed_gain_timestamp,
                "current_missed_gain": current_missed_gain,
                "would_be_value": analysis.would_be_value_usd,
            }
    except Exception as e:
        logger.exception(f"Price analysis error for {request.token_address}: {e}")
        raise HTTPException(status_code=500, detail="Price analysis failed")

    return PriceResponse(
        metadata=metadata.model_dump() if metadata else None,
        price_analysis=price.model_dump() if price else None,
        patience_tax=patience,
    )


@router.post("/wallet", response_model=WalletAnalysisResponse, response_model_by_alias=True)
async def analyze_wallet(
    request: WalletAnalysisRequest,
    service: WalletAnalysisService = Depends(get_wallet_service),
    db: Optional[AsyncSession] = Depends(get_db),
):
    """
    Full pipeline for one wallet: ingest, aggregate, score and optionally store.

    **Returns:**
    - Analyzed positions, conviction metrics and the ingestion quality report
    """
    if request.persist and db is None:
        raise HTTPException(status_code=503, detail="Persistence is not configured")

    try:
        result = await service.analyze_wallet(
            request.address,
            request.chain,
            time_horizon_days=request.time_horizon_days,
            min_trade_value=request.min_trade_value,
            include_reputation=request.include_reputation,
            persist=request.persist,
            session=db,
        )
    except AllProvidersExhausted as e:
        raise HTTPException(status_code=502, detail=f"Transaction ingestion failed: {e}")
    except Exception as e:
        logger.exception(f"Wallet analysis error for {request.address}: {e}")
        raise HTTPException(status_code=500, detail="Wallet analysis failed")

    return WalletAnalysisResponse(
        address=result.address,
        chain=result.chain,
        time_horizon_days=result.time_horizon_days,
        count=result.ingestion.count,
        quality=result.ingestion.quality.to_dict(),
        provider=result.ingestion.provider,
        positions=[asdict(p) for p in result.positions],
        metrics=result.metrics.to_dict(),
        reputation_score=result.reputation_score,
        persisted=result.persisted,
    )
