from conviction.services.analysis.positions import aggregate_positions
from conviction.services.analysis.patience_tax import PatienceTaxEngine, compute_patience_tax
from conviction.services.analysis.scoring import (
    ArchetypeThresholds,
    ConvictionScorer,
    ScoringWeights,
    classify_archetype,
    inverse_percentile,
    reputation_multiplier,
)
from conviction.services.analysis.batch import BatchAnalysisService, BatchResult, analyze_position

__all__ = [
    "aggregate_positions",
    "PatienceTaxEngine",
    "compute_patience_tax",
    "ArchetypeThresholds",
    "ConvictionScorer",
    "ScoringWeights",
    "classify_archetype",
    "inverse_percentile",
    "reputation_multiplier",
    "BatchAnalysisService",
    "BatchResult",
    "analyze_position",
]
