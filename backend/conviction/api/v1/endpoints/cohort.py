"""
Cohort and Leaderboard Endpoints

Read-only views over the stored analysis population.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from conviction.api.v1.endpoints.analysis import require_db
from conviction.core.config import settings
from conviction.db.session import get_db
from conviction.services.cohort.analysis_repository import AnalysisRepository
from conviction.services.models import Archetype, Chain


router = APIRouter(tags=["cohort"])


@router.get("/cohort")
async def get_cohort(
    chain: Optional[Chain] = Query(None),
    score: Optional[float] = Query(None, ge=0, le=100),
    db: Optional[AsyncSession] = Depends(get_db),
):
    """
    Cohort statistics, or the percentile of a given score.

    **Parameters:**
    - `chain`: Restrict to one chain (default: all)
    - `score`: When given, return the share of recent stored scores below it

    **Returns:**
    - With `score`: `{percentile, score, chain, populationSufficient}`;
      percentile is null while the population is under the minimum
    - Without: `{stats, topPerformers}` (top 10 wallets)
    """
    repo = AnalysisRepository(require_db(db))
    chain_name = chain.value if chain else None

    if score is not None:
        percentile = await repo.get_real_percentile(score, chain_name)
        return {
            "percentile": percentile,
            "score": score,
            "chain": chain_name or "all",
            "populationSufficient": percentile is not None,
            "minPopulation": settings.COHORT_MIN_POPULATION,
        }

    stats = await repo.get_cohort_stats(chain_name)
    top = await repo.get_leaderboard(chain=chain_name, limit=10)
    return {
        "stats": stats,
        "topPerformers": [row.to_dict() for row in top],
    }


@router.get("/leaderboard")
async def get_leaderboard(
    chain: Optional[Chain] = Query(None),
    archetype: Optional[Archetype] = Query(None),
    min_conviction: Optional[float] = Query(None, alias="minConviction", ge=0, le=100),
    limit: int = Query(20, ge=1, le=100),
    db: Optional[AsyncSession] = Depends(get_db),
):
    """
    Best stored analysis per wallet, highest conviction first.

    **Parameters:**
    - `chain`: solana or base (default: all)
    - `archetype`: e.g. "Iron Pillar"
    - `minConviction`: Minimum score
    - `limit`: Number of wallets (1-100, default: 20)
    """
    repo = AnalysisRepository(require_db(db))
    rows = await repo.get_leaderboard(
        chain=chain.value if chain else None,
        archetype=archetype.value if archetype else None,
        min_score=min_conviction,
        limit=limit,
    )
    return {
        "count": len(rows),
        "leaderboard": [
            {"rank": i + 1, **row.to_dict()} for i, row in enumerate(rows)
        ],
    }
