"""
Analysis Repository

Persistence sink for ConvictionMetrics and the reference population for
cohort percentiles, cohort statistics and the leaderboard.
"""

import statistics
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from conviction.core.config import settings
from conviction.models.conviction_analysis import ConvictionAnalysis
from conviction.services.models import ConvictionMetrics


UPSERT_COLUMNS = (
    "score", "patience_tax", "upside_capture", "early_exits", "conviction_wins",
    "percentile", "archetype", "total_positions", "avg_holding_period", "win_rate",
    "ens_name", "farcaster_username", "ethos_score", "analyzed_at",
)

# EVM addresses are case-insensitive, Solana addresses are not
CASE_INSENSITIVE_CHAINS = ("base",)


def stored_address(address: str, chain: str) -> str:
    """Address in the form it is stored for ``chain``"""
    return address.lower() if chain in CASE_INSENSITIVE_CHAINS else address


class AnalysisRepository:
    """
    Data access for stored conviction analyses.

    Example:
        ```python
        async with async_session() as session:
            repo = AnalysisRepository(session)
            await repo.save_analysis(address, "solana", metrics, 180)
            pct = await repo.get_real_percentile(72.5, "solana")
        ```
    """

    def __init__(self, session: AsyncSession, clock=None):
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(ConvictionAnalysis)
        return pg_insert(ConvictionAnalysis)

    def _window_start(self) -> datetime:
        return self._clock() - timedelta(days=settings.COHORT_WINDOW_DAYS)

    # ========================================================================
    # WRITES
    # ========================================================================

    async def save_analysis(
        self,
        address: str,
        chain: str,
        metrics: ConvictionMetrics,
        time_horizon: int,
        identity: Optional[Dict[str, Any]] = None,
    ) -> ConvictionAnalysis:
        """
        Upsert today's analysis for (address, chain, time_horizon).

        Args:
            address: Wallet address (lower-cased on Base)
            chain: Chain name
            metrics: Computed metrics
            time_horizon: Lookback days the metrics were computed over
            identity: Optional ens_name / farcaster_username / ethos_score

        Returns:
            The stored row
        """
        identity = identity or {}
        now = self._clock()
        values = {
            "address": stored_address(address, chain),
            "chain": chain,
            "score": metrics.score,
            "patience_tax": metrics.patience_tax,
            "upside_capture": metrics.upside_capture,
            "early_exits": metrics.early_exits,
            "conviction_wins": metrics.conviction_wins,
            "percentile": metrics.percentile,
            "archetype": metrics.archetype.value if metrics.archetype else None,
            "total_positions": metrics.total_positions,
            "avg_holding_period": metrics.avg_holding_period,
            "win_rate": metrics.win_rate,
            "time_horizon": time_horizon,
            "ens_name": identity.get("ens_name"),
            "farcaster_username": identity.get("farcaster_username"),
            "ethos_score": identity.get("ethos_score"),
            "analyzed_at": now,
            "analyzed_date": now.date(),
        }

        stmt = self._insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["address", "chain", "time_horizon", "analyzed_date"],
            set_={col: getattr(stmt.excluded, col) for col in UPSERT_COLUMNS},
        )
        await self.session.execute(stmt)
        await self.session.commit()

        result = await self.session.execute(
            select(ConvictionAnalysis).where(
                ConvictionAnalysis.address == values["address"],
                ConvictionAnalysis.chain == chain,
                ConvictionAnalysis.time_horizon == time_horizon,
                ConvictionAnalysis.analyzed_date == values["analyzed_date"],
            ).execution_options(populate_existing=True)
        )
        row = result.scalar_one()
        logger.info(f"Saved analysis for {row.address} on {chain}: score={row.score}")
        return row

    # ========================================================================
    # READS
    # ========================================================================

    async def get_analyses_by_address(self, address: str, limit: int = 10) -> List[ConvictionAnalysis]:
        """
        Most recent analyses for an address, newest first.

        Base rows match case-insensitively, Solana rows only exactly.
        """
        result = await self.session.execute(
            select(ConvictionAnalysis)
            .where(or_(
                and_(
                    ConvictionAnalysis.chain.in_(CASE_INSENSITIVE_CHAINS),
                    ConvictionAnalysis.address == address.lower(),
                ),
                and_(
                    ConvictionAnalysis.chain.notin_(CASE_INSENSITIVE_CHAINS),
                    ConvictionAnalysis.address == address,
                ),
            ))
            .order_by(ConvictionAnalysis.analyzed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_real_percentile(self, score: float, chain: Optional[str] = None) -> Optional[int]:
        """
        Share (0-100) of recent stored scores strictly below ``score``.

        Returns None when the recent population is smaller than
        COHORT_MIN_POPULATION.
        """
        query = select(
            func.count(ConvictionAnalysis.id),
            func.coalesce(func.sum(case((ConvictionAnalysis.score < score, 1), else_=0)), 0),
        ).where(ConvictionAnalysis.analyzed_at > self._window_start())
        if chain:
            query = query.where(ConvictionAnalysis.chain == chain)

        total, below = (await self.session.execute(query)).one()
        if total < settings.COHORT_MIN_POPULATION:
            return None
        return round(below / total * 100)

    async def get_cohort_stats(self, chain: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Aggregate statistics over the recent population, or None when empty"""
        query = select(
            ConvictionAnalysis.address,
            ConvictionAnalysis.score,
            ConvictionAnalysis.patience_tax,
            ConvictionAnalysis.win_rate,
            ConvictionAnalysis.archetype,
        ).where(ConvictionAnalysis.analyzed_at > self._window_start())
        if chain:
            query = query.where(ConvictionAnalysis.chain == chain)

        rows = (await self.session.execute(query)).all()
        if not rows:
            return None

        scores = [r.score for r in rows]
        archetypes = Counter(r.archetype for r in rows if r.archetype)

        return {
            "chain": chain or "all",
            "totalWallets": len({r.address for r in rows}),
            "totalAnalyses": len(rows),
            "avgScore": round(statistics.fmean(scores), 1),
            "medianScore": round(statistics.median(scores), 1),
            "avgPatienceTax": round(statistics.fmean(r.patience_tax for r in rows)),
            "avgWinRate": round(statistics.fmean(r.win_rate for r in rows)),
            "mostCommonArchetype": archetypes.most_common(1)[0][0] if archetypes else None,
        }

    async def get_leaderboard(
        self,
        chain: Optional[str] = None,
        archetype: Optional[str] = None,
        min_score: Optional[float] = None,
        limit: int = 20,
    ) -> List[ConvictionAnalysis]:
        """
        Best stored analysis per address, highest score first.

        Ranking happens in the database: ``row_number()`` over each
        address keeps its best matching row, then the top ``limit`` are
        returned.
        """
        ranked = select(
            ConvictionAnalysis.id,
            func.row_number().over(
                partition_by=ConvictionAnalysis.address,
                order_by=(ConvictionAnalysis.score.desc(), ConvictionAnalysis.analyzed_at.desc()),
            ).label("address_rank"),
        )
        if chain:
            ranked = ranked.where(ConvictionAnalysis.chain == chain)
        if archetype:
            ranked = ranked.where(ConvictionAnalysis.archetype == archetype)
        if min_score is not None:
            ranked = ranked.where(ConvictionAnalysis.score >= min_score)
        ranked = ranked.subquery()

        query = (
            select(ConvictionAnalysis)
            .join(ranked, ConvictionAnalysis.id == ranked.c.id)
            .where(ranked.c.address_rank == 1)
            .order_by(ConvictionAnalysis.score.desc(), ConvictionAnalysis.analyzed_at.desc())
            .limit(limit)
        )
        return list((await self.session.execute(query)).scalars().all())
