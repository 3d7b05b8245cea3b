"""
Shared service singletons for the API layer.

Every dependency is a plain function so tests can swap it with
``app.dependency_overrides``.
"""
from typing import Optional

from conviction.services.analysis.batch import BatchAnalysisService
from conviction.services.analysis.pipeline import WalletAnalysisService
from conviction.services.cache import Cache, create_cache
from conviction.services.ingestion import TransactionIngestionService
from conviction.services.market_data import MarketDataService
from conviction.services.providers import EthosClient


_cache: Optional[Cache] = None
_market: Optional[MarketDataService] = None
_ingestion: Optional[TransactionIngestionService] = None
_batch: Optional[BatchAnalysisService] = None
_ethos: Optional[EthosClient] = None


def get_cache() -> Cache:
    global _cache
    if _cache is None:
        _cache = create_cache()
    return _cache


def get_market_data() -> MarketDataService:
    global _market
    if _market is None:
        _market = MarketDataService(cache=get_cache())
    return _market


def get_ingestion_service() -> TransactionIngestionService:
    global _ingestion
    if _ingestion is None:
        _ingestion = TransactionIngestionService(market=get_market_data())
    return _ingestion


def get_batch_service() -> BatchAnalysisService:
    global _batch
    if _batch is None:
        _batch = BatchAnalysisService(get_market_data())
    return _batch


def get_ethos_client() -> EthosClient:
    global _ethos
    if _ethos is None:
        _ethos = EthosClient()
    return _ethos


def get_wallet_service() -> WalletAnalysisService:
    return WalletAnalysisService(
        get_ingestion_service(),
        get_batch_service(),
        ethos=get_ethos_client(),
    )


async def shutdown_services():
    """Close provider clients and the cache; called from the app lifespan"""
    global _cache, _market, _ingestion, _batch, _ethos
    if _ingestion is not None:
        await _ingestion.close()
    if _market is not None:
        await _market.close()
    if _ethos is not None:
        await _ethos.close()
    if _cache is not None:
        await _cache.close()
    _cache = _market = _ingestion = _batch = _ethos = None
