# Import all models here for Alembic
from conviction.db.base_class import Base
from conviction.models.conviction_analysis import ConvictionAnalysis

__all__ = [
    "Base",
    "ConvictionAnalysis",
]
