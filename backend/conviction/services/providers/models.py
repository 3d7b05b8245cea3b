"""
Provider payload models.

Normalized shapes returned by every provider adapter regardless of the
upstream JSON format.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class PricePoint(BaseModel):
    """One historical price sample"""
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")
    price: float = Field(..., ge=0)
    volume: Optional[float] = None


class TokenMetadata(BaseModel):
    """Display metadata for a token"""
    address: str
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"
    decimals: Optional[int] = None
    logo_uri: Optional[str] = None

    def to_public(self) -> Dict[str, Any]:
        return {"name": self.name, "symbol": self.symbol, "logoUri": self.logo_uri}


class TokenPrice(BaseModel):
    """Current price snapshot for a token"""
    current_price: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    last_updated: Optional[int] = None
