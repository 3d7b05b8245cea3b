"""
Stored conviction analyses.

One row per (address, chain, time horizon, day). Re-analyzing a wallet on
the same day overwrites that day's row; this table is the population used
for cohort percentiles and the leaderboard.
"""
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Date, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.sql import func
from typing import Dict, Any

from conviction.db.base_class import Base


class ConvictionAnalysis(Base):
    """Wallet-level ConvictionMetrics snapshot plus identity fields"""
    __tablename__ = "conviction_analyses"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    address = Column(String(64), nullable=False, index=True)
    chain = Column(String(16), nullable=False)
    ens_name = Column(String(255), nullable=True)
    farcaster_username = Column(String(255), nullable=True)
    ethos_score = Column(Float, nullable=True)

    # Metrics
    score = Column(Float, nullable=False)
    patience_tax = Column(Float, default=0.0, nullable=False)
    upside_capture = Column(Float, default=0.0, nullable=False)
    early_exits = Column(Integer, default=0, nullable=False)
    conviction_wins = Column(Integer, default=0, nullable=False)
    percentile = Column(Integer, default=0, nullable=False)
    archetype = Column(String(32), nullable=True)
    total_positions = Column(Integer, default=0, nullable=False)
    avg_holding_period = Column(Float, default=0.0, nullable=False)
    win_rate = Column(Float, default=0.0, nullable=False)

    # Analysis parameters
    time_horizon = Column(Integer, nullable=False)
    analyzed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    analyzed_date = Column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            'address', 'chain', 'time_horizon', 'analyzed_date',
            name='uq_conviction_analysis_daily'
        ),
        CheckConstraint('score >= 0 AND score <= 100', name='check_score_range'),
        CheckConstraint("chain IN ('solana', 'base')", name='check_chain'),
        Index('idx_conviction_chain_score', 'chain', 'score'),
        Index('idx_conviction_analyzed_at', 'analyzed_at'),
        Index('idx_conviction_archetype', 'archetype'),
    )

    def __repr__(self):
        return (
            f"<ConvictionAnalysis(address={self.address}, chain={self.chain}, "
            f"score={self.score}, date={self.analyzed_date})>"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "chain": self.chain,
            "score": self.score,
            "patienceTax": self.patience_tax,
            "upsideCapture": self.upside_capture,
            "earlyExits": self.early_exits,
            "convictionWins": self.conviction_wins,
            "percentile": self.percentile,
            "archetype": self.archetype,
            "totalPositions": self.total_positions,
            "avgHoldingPeriod": self.avg_holding_period,
            "winRate": self.win_rate,
            "timeHorizon": self.time_horizon,
            "analyzedAt": self.analyzed_at.isoformat() if self.analyzed_at else None,
            "ensName": self.ens_name,
            "farcasterUsername": self.farcaster_username,
            "ethosScore": self.ethos_score,
        }
