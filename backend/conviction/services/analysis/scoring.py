"""
Conviction Scorer

The single canonical conviction score. Weights and archetype thresholds are
versioned tables so that a change to the formula is an explicit, auditable
edit rather than a drift between call sites.

Score (weights sum to 1.0 when the holding component is read as 0.15):

    winRate * 0.25
    + upsideCapture * 0.35
    + (100 - earlyExitRate) * 0.25
    + min(avgHoldingDays / 30, 1) * 15

clamped to [0, 100]. An optional reputation multiplier scales the base
score before clamping and before archetype classification.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from conviction.core.config import settings
from conviction.services.models import Archetype, ConvictionMetrics, PositionAnalysis


@dataclass(frozen=True)
class ScoringWeights:
    version: str = "v1"
    win_rate: float = 0.25
    upside_capture: float = 0.35
    early_exit_mitigation: float = 0.25
    holding_period: float = 0.15
    # Days of average holding that earn the full holding component
    holding_period_full_days: float = 30.0


@dataclass(frozen=True)
class ArchetypeThresholds:
    iron_pillar_min_score: float = 90
    iron_pillar_max_patience_tax: float = 1000
    profit_phantom_min_score: float = 70
    profit_phantom_min_patience_tax: float = 5000
    exit_voyager_max_score: float = 40


DEFAULT_WEIGHTS = ScoringWeights()
DEFAULT_THRESHOLDS = ArchetypeThresholds()


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def reputation_multiplier(reputation_score: Optional[float], tiers: Optional[Sequence] = None) -> float:
    """
    Score multiplier for an external reputation score.

    Tiers are ``[min_score, multiplier]`` pairs checked from the highest
    threshold down; no score or a score under every tier gives 1.0.
    """
    if reputation_score is None:
        return 1.0
    tiers = settings.REPUTATION_TIERS if tiers is None else tiers
    for min_score, multiplier in sorted(tiers, key=lambda t: t[0], reverse=True):
        if reputation_score >= min_score:
            return float(multiplier)
    return 1.0


def classify_archetype(
    score: float,
    patience_tax: float,
    thresholds: ArchetypeThresholds = DEFAULT_THRESHOLDS,
) -> Archetype:
    """Priority-ordered decision list, first match wins"""
    if score > thresholds.iron_pillar_min_score and patience_tax < thresholds.iron_pillar_max_patience_tax:
        return Archetype.IRON_PILLAR
    if score > thresholds.profit_phantom_min_score and patience_tax > thresholds.profit_phantom_min_patience_tax:
        return Archetype.PROFIT_PHANTOM
    if score < thresholds.exit_voyager_max_score:
        return Archetype.EXIT_VOYAGER
    return Archetype.DIAMOND_HAND


def inverse_percentile(score: float) -> int:
    """Percentile fallback when no stored population is available"""
    return int(clamp(100 - math.floor(score), 1, 99))


class ConvictionScorer:
    """Turns analyzed positions into wallet-level ConvictionMetrics"""

    def __init__(
        self,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        thresholds: ArchetypeThresholds = DEFAULT_THRESHOLDS,
    ):
        self.weights = weights
        self.thresholds = thresholds

    def empty_metrics(self) -> ConvictionMetrics:
        return ConvictionMetrics(
            score=0.0,
            patience_tax=0.0,
            upside_capture=0.0,
            early_exits=0,
            conviction_wins=0,
            percentile=0,
            archetype=Archetype.EXIT_VOYAGER,
            total_positions=0,
            avg_holding_period=0.0,
            win_rate=0.0,
            weights_version=self.weights.version,
        )

    def base_score(
        self,
        win_rate: float,
        upside_capture: float,
        early_exit_rate: float,
        avg_holding_days: float,
    ) -> float:
        w = self.weights
        holding = min(avg_holding_days / w.holding_period_full_days, 1.0)
        return (
            win_rate * w.win_rate
            + upside_capture * w.upside_capture
            + (100 - early_exit_rate) * w.early_exit_mitigation
            + holding * w.holding_period * 100
        )

    def score(
        self,
        analyses: List[PositionAnalysis],
        reputation_score: Optional[float] = None,
    ) -> ConvictionMetrics:
        """
        Score a wallet from its analyzed positions.

        Args:
            analyses: One PositionAnalysis per position
            reputation_score: Optional external credibility score

        Returns:
            ConvictionMetrics (score 0, percentile 0, Exit Voyager when empty)
        """
        if not analyses:
            return self.empty_metrics()

        total = len(analyses)
        total_realized = 0.0
        total_patience_tax = 0.0
        total_holding_days = 0.0
        winning = early_exits = conviction_wins = exited = 0

        for analysis in analyses:
            realized = analysis.exit_details.total_value if analysis.exit_details else 0.0
            total_realized += realized
            total_patience_tax += analysis.patience_tax
            total_holding_days += analysis.holding_period_days

            if analysis.exit_details is not None:
                exited += 1
            if analysis.realized_pnl > 0:
                winning += 1
            if analysis.realized_pnl > analysis.total_invested * 0.5:
                conviction_wins += 1
            if analysis.is_early_exit:
                early_exits += 1

        win_rate = winning / total * 100
        avg_holding = total_holding_days / total
        potential = total_realized + total_patience_tax
        upside_capture = total_realized / potential * 100 if potential > 0 else 0.0
        early_exit_rate = early_exits / exited * 100 if exited else 0.0

        multiplier = reputation_multiplier(reputation_score)
        score = clamp(
            self.base_score(win_rate, upside_capture, early_exit_rate, avg_holding) * multiplier,
            0,
            100,
        )

        return ConvictionMetrics(
            score=round(score, 1),
            patience_tax=round(total_patience_tax),
            upside_capture=round(upside_capture),
            early_exits=early_exits,
            conviction_wins=conviction_wins,
            percentile=inverse_percentile(score),
            archetype=classify_archetype(score, total_patience_tax, self.thresholds),
            total_positions=total,
            avg_holding_period=round(avg_holding),
            win_rate=round(win_rate),
            reputation_multiplier=multiplier,
            weights_version=self.weights.version,
        )
