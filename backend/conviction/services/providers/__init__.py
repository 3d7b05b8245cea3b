"""
Provider Adapters

Typed async clients for the upstream transaction-history, price, metadata
and reputation services.
"""

from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.birdeye import BirdeyeClient
from conviction.services.providers.helius import HeliusClient
from conviction.services.providers.alchemy import AlchemyClient
from conviction.services.providers.jupiter import JupiterClient
from conviction.services.providers.dexscreener import DexScreenerClient
from conviction.services.providers.coingecko import CoinGeckoClient
from conviction.services.providers.ethos import EthosClient
from conviction.services.providers.models import PricePoint, TokenMetadata, TokenPrice
from conviction.services.providers.errors import (
    ErrorCategory,
    UpstreamError,
    UpstreamUnavailable,
    AuthenticationError,
    RateLimitError,
    NetworkError,
    ProviderNotConfigured,
    InvalidRecordError,
    AllProvidersExhausted,
    categorize_error,
)

__all__ = [
    # Clients
    "BaseProviderClient",
    "BirdeyeClient",
    "HeliusClient",
    "AlchemyClient",
    "JupiterClient",
    "DexScreenerClient",
    "CoinGeckoClient",
    "EthosClient",

    # Models
    "PricePoint",
    "TokenMetadata",
    "TokenPrice",

    # Errors
    "ErrorCategory",
    "UpstreamError",
    "UpstreamUnavailable",
    "AuthenticationError",
    "RateLimitError",
    "NetworkError",
    "ProviderNotConfigured",
    "InvalidRecordError",
    "AllProvidersExhausted",
    "categorize_error",
]
