"""
Stored Analysis Endpoints

Persist conviction metrics and list a wallet's stored history. Both
require DATABASE_URL; without it they answer 503.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from conviction.db.session import get_db
from conviction.schemas.analysis import SaveAnalysisRequest
from conviction.services.cohort.analysis_repository import AnalysisRepository
from conviction.services.models import Archetype, ConvictionMetrics


router = APIRouter(prefix="/analysis", tags=["analysis"])


def require_db(db: Optional[AsyncSession]) -> AsyncSession:
    if db is None:
        raise HTTPException(status_code=503, detail="Persistence is not configured")
    return db


@router.post("")
async def save_analysis(
    request: SaveAnalysisRequest,
    db: Optional[AsyncSession] = Depends(get_db),
):
    """
    Store today's analysis for a wallet.

    Re-submitting for the same address, chain and horizon on the same day
    replaces the earlier row.
    """
    session = require_db(db)
    m = request.metrics
    metrics = ConvictionMetrics(
        score=m.score,
        patience_tax=m.patience_tax,
        upside_capture=m.upside_capture,
        early_exits=m.early_exits,
        conviction_wins=m.conviction_wins,
        percentile=m.percentile,
        archetype=Archetype(m.archetype),
        total_positions=m.total_positions,
        avg_holding_period=m.avg_holding_period,
        win_rate=m.win_rate,
        reputation_multiplier=m.reputation_multiplier,
        weights_version=m.weights_version,
    )

    try:
        row = await AnalysisRepository(session).save_analysis(
            request.address,
            request.chain.value,
            metrics,
            request.time_horizon,
            identity=request.identity.model_dump() if request.identity else None,
        )
    except Exception as e:
        logger.exception(f"Failed to save analysis for {request.address}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save analysis")

    return {"success": True, "analysis": row.to_dict()}


@router.get("")
async def get_analyses(
    address: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=100),
    db: Optional[AsyncSession] = Depends(get_db),
):
    """
    Most recent stored analyses for an address, newest first.
    """
    session = require_db(db)
    rows = await AnalysisRepository(session).get_analyses_by_address(address, limit=limit)
    return {
        "address": address,
        "count": len(rows),
        "analyses": [row.to_dict() for row in rows],
    }
