from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "rolegate"
    # Application settings
    PORT: int = 8000
    HOST: str = "127.0.0.1"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ADMIN_PASSWORD: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./rolegate.db"

    # Redis settings, leave REDIS_HOST empty to run on the in-memory cache only
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_MAX_CONNECTIONS: int | None = 10
    REDIS_SSL: bool | None = False
    # Memory cache settings
    MEMORY_CACHE_MAX_SIZE: int = 64 * 1024 * 1024  # 64MB in bytes
    REDIS_RECHECK_INTERVAL: int = 30 * 60  # 30 minutes in seconds

    # Challenge / verification settings
    CHALLENGE_TTL_SECONDS: int = 10 * 60  # 10 minutes
    RATE_LIMIT_MAX_ATTEMPTS: int = 5
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60  # 15 minutes

    # Batch reconciliation settings
    BATCH_SIZE: int = 10
    BATCH_DELAY_SECONDS: float = 2.0
    BALANCE_TIMEOUT_SECONDS: float = 15.0
    ROLE_MUTATION_TIMEOUT_SECONDS: float = 10.0
    SCHEDULE_INTERVAL: str = "0 */6 * * *"  # every 6 hours
    SCHEDULER_ENABLED: bool = True

    # Tier configuration file (yaml)
    TIERS_PATH: str = "config/tiers.yaml"

    # Chain settings
    CHAIN: str = "berachain"
    RPC_URL: str | None = "https://rpc.berachain.com"
    CONTRACT_ADDRESS: str | None = None

    # Community platform
    DISCORD_TOKEN: str | None = None

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
