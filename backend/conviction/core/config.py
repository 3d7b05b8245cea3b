from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Conviction Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, production, test
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False
    WORKERS: int = 1

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: List[str] = ["*"]
    CORS_HEADERS: List[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Sentry
    SENTRY_DSN: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1
    SENTRY_ENVIRONMENT: str = "development"

    # Database (persistence sink is disabled when unset)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Cache (in-memory when unset)
    REDIS_URL: Optional[str] = None
    CACHE_MAX_SIZE: int = 500
    CACHE_TTL_METADATA: int = 24 * 60 * 60
    CACHE_TTL_PRICE: int = 5 * 60
    CACHE_TTL_PRICE_HISTORY: int = 60 * 60
    CACHE_TTL_BASE_PRICE: int = 10 * 60

    # Provider credentials and endpoints
    BIRDEYE_API_KEY: Optional[str] = None
    BIRDEYE_API_URL: str = "https://public-api.birdeye.so"
    HELIUS_API_KEY: Optional[str] = None
    HELIUS_API_URL: str = "https://api.helius.xyz"
    ALCHEMY_API_KEY: Optional[str] = None
    ALCHEMY_BASE_RPC_URL: str = "https://base-mainnet.g.alchemy.com/v2"
    JUPITER_API_KEY: Optional[str] = None
    JUPITER_PRICE_URL: str = "https://api.jup.ag"
    JUPITER_TOKENS_URL: str = "https://tokens.jup.ag"
    DEXSCREENER_API_URL: str = "https://api.dexscreener.com/latest/dex"
    COINGECKO_API_KEY: Optional[str] = None
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"
    ETHOS_API_URL: str = "https://api.ethos.network/api/v2"
    ETHOS_CLIENT_ID: str = "conviction-engine"

    # Provider transport policy
    PROVIDER_TIMEOUT_SECONDS: float = 15.0
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_RETRY_INITIAL_DELAY: float = 0.5  # seconds
    PROVIDER_RETRY_BACKOFF: float = 2.0
    PROVIDER_RETRY_MAX_DELAY: float = 10.0  # seconds
    PROVIDER_REQUESTS_PER_MINUTE: int = 120

    # Ingestion policy
    # Helius and Birdeye quotas are metered per day; 5 pages x 100 records
    # bounds one analysis to at most 5 history calls per provider.
    INGESTION_PAGE_SIZE: int = 100
    INGESTION_MAX_PAGES: int = 5
    # alchemy_getAssetTransfers returns at most 1000 per call; 500 keeps
    # each of the two parallel range queries inside one compute-unit tier.
    ALCHEMY_MAX_TRANSFER_COUNT: int = 500
    BASE_AVG_BLOCK_TIME_SECONDS: float = 2.0
    TRADE_PROVIDERS: Dict[str, List[str]] = {
        "solana": ["birdeye", "helius"],
        "base": ["birdeye", "alchemy"],
    }

    # Analysis constants
    DEFAULT_TIME_HORIZON_DAYS: int = 180
    MAX_TIME_HORIZON_DAYS: int = 730
    DEFAULT_MIN_TRADE_VALUE_USD: float = 100.0
    PATIENCE_TAX_WINDOW_DAYS: int = 90
    EARLY_EXIT_THRESHOLD_PCT: float = 50.0
    DECIMAL_CORRECTION_THRESHOLD: float = 1_000_000_000_000.0
    SOL_FALLBACK_PRICE_USD: float = 180.0
    ETH_FALLBACK_PRICE_USD: float = 3000.0

    # Cohort policy
    COHORT_MIN_POPULATION: int = 20
    COHORT_WINDOW_DAYS: int = 90

    # Reputation multiplier tiers (minimum score -> multiplier), highest first
    REPUTATION_TIERS: List[List[float]] = [
        [2000, 1.5],
        [1700, 1.3],
        [1400, 1.15],
        [1000, 1.05],
    ]


settings = Settings()
