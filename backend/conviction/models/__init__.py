from conviction.models.conviction_analysis import ConvictionAnalysis

__all__ = ["ConvictionAnalysis"]
