"""
Solana Explorer API Configuration
Environment-driven settings for the explorer gateway
"""

import os
from typing import Dict


class Config:
    """Base configuration"""

    # Upstream Solana RPC endpoints, one per supported network
    MAINNET_RPC_URL = os.getenv(
        "SOLANA_MAINNET_RPC_URL", "https://api.mainnet-beta.solana.com"
    )
    DEVNET_RPC_URL = os.getenv("SOLANA_DEVNET_RPC_URL", "https://api.devnet.solana.com")
    DEFAULT_NETWORK = os.getenv("DEFAULT_NETWORK", "mainnet")

    # Upstream call behaviour
    RPC_TIMEOUT = float(os.getenv("RPC_TIMEOUT", "15"))  # seconds
    RPC_MAX_RETRIES = int(os.getenv("RPC_MAX_RETRIES", "0"))
    RPC_FANOUT_WORKERS = int(os.getenv("RPC_FANOUT_WORKERS", "8"))

    # Explorer Configuration
    EXPLORER_PORT = int(os.getenv("EXPLORER_PORT", "3001"))
    EXPLORER_HOST = os.getenv("EXPLORER_HOST", "0.0.0.0")
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # Cache Configuration
    REDIS_URL = os.getenv("REDIS_URL", "")  # empty disables the Redis tier
    CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "5000"))
    CACHE_TTL_NETWORK_STATS = int(os.getenv("CACHE_TTL_NETWORK_STATS", "15"))
    CACHE_TTL_REAL_TIME = int(os.getenv("CACHE_TTL_REAL_TIME", "5"))
    CACHE_TTL_TRANSACTIONS = int(os.getenv("CACHE_TTL_TRANSACTIONS", "30"))
    CACHE_TTL_TOKEN_BALANCES = int(os.getenv("CACHE_TTL_TOKEN_BALANCES", "60"))
    CACHE_TTL_FINALIZED = int(os.getenv("CACHE_TTL_FINALIZED", "600"))
    CACHE_TTL_BLOCKS = int(os.getenv("CACHE_TTL_BLOCKS", "300"))
    CACHE_TTL_TOKEN_DETAILS = int(os.getenv("CACHE_TTL_TOKEN_DETAILS", "600"))
    CACHE_TTL_ADDRESS_NFTS = int(os.getenv("CACHE_TTL_ADDRESS_NFTS", "300"))
    CACHE_TTL_SEARCH = int(os.getenv("CACHE_TTL_SEARCH", "15"))
    CACHE_TTL_ANALYTICS_OVERVIEW = int(os.getenv("CACHE_TTL_ANALYTICS_OVERVIEW", "300"))
    CACHE_TTL_ANALYTICS_CHARTS = int(os.getenv("CACHE_TTL_ANALYTICS_CHARTS", "120"))
    CACHE_TTL_ANALYTICS_PROGRAMS = int(os.getenv("CACHE_TTL_ANALYTICS_PROGRAMS", "900"))

    # API Rate Limiting
    RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "300"))
    RATE_LIMIT_SEARCH_PER_MINUTE = int(os.getenv("RATE_LIMIT_SEARCH_PER_MINUTE", "60"))
    RATE_LIMIT_ANALYTICS_PER_MINUTE = int(
        os.getenv("RATE_LIMIT_ANALYTICS_PER_MINUTE", "60")
    )

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Response shaping
    TX_LOG_LINE_LIMIT = int(os.getenv("TX_LOG_LINE_LIMIT", "200"))
    ADDRESS_TX_DETAIL_LIMIT = int(os.getenv("ADDRESS_TX_DETAIL_LIMIT", "10"))
    ADDRESS_SIGNATURE_SCAN = int(os.getenv("ADDRESS_SIGNATURE_SCAN", "100"))

    # WebSocket Configuration
    WS_PUSH_INTERVAL = float(os.getenv("WS_PUSH_INTERVAL", "10"))

    @classmethod
    def networks(cls) -> Dict[str, str]:
        """Supported network identifiers mapped to their upstream URL"""
        return {"mainnet": cls.MAINNET_RPC_URL, "devnet": cls.DEVNET_RPC_URL}

    @classmethod
    def validate(cls) -> None:
        """Validate configuration"""
        errors = []

        if not cls.MAINNET_RPC_URL:
            errors.append("SOLANA_MAINNET_RPC_URL is required")

        if not cls.DEVNET_RPC_URL:
            errors.append("SOLANA_DEVNET_RPC_URL is required")

        if cls.DEFAULT_NETWORK not in ("mainnet", "devnet"):
            errors.append("DEFAULT_NETWORK must be mainnet or devnet")

        if cls.RPC_TIMEOUT <= 0:
            errors.append("RPC_TIMEOUT must be positive")

        if cls.RPC_FANOUT_WORKERS < 1:
            errors.append("RPC_FANOUT_WORKERS must be at least 1")

        if cls.EXPLORER_PORT < 1 or cls.EXPLORER_PORT > 65535:
            errors.append("EXPLORER_PORT must be between 1 and 65535")

        if errors:
            raise ValueError(f"Configuration validation failed: {', '.join(errors)}")


class DevelopmentConfig(Config):
    """Development configuration"""

    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False
    RATE_LIMIT_ENABLED = True
    LOG_LEVEL = "WARNING"


class TestConfig(Config):
    """Test configuration"""

    MAINNET_RPC_URL = "http://mainnet.invalid"
    DEVNET_RPC_URL = "http://devnet.invalid"
    DEFAULT_NETWORK = "mainnet"
    REDIS_URL = ""
    RATE_LIMIT_ENABLED = False
    RPC_TIMEOUT = 2.0


# Environment-based configuration selection
ENV_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "test": TestConfig,
}


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("EXPLORER_ENV", "development")
    config_class = ENV_CONFIGS.get(env, DevelopmentConfig)
    config_class.validate()
    return config_class


# Export current configuration
config = get_config()
