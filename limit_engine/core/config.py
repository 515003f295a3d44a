from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite:///./limit_engine.db"

    # Redis (notification fan-out)
    redis_host: str = "localhost"
    redis_port: int = 6379

    # Chain
    chain_rpc_url: str = "https://api.mainnet.abs.xyz"
    chain_id: int = 2741
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_seconds: float = 1.0
    explorer_tx_url: str = "https://abscan.org/tx/{tx_hash}"

    # Price feed + swap planning
    relay_api_url: str = "https://api.relay.link"
    http_timeout_seconds: float = 10.0

    # Wallet key encryption
    encryption_key: str = Field(..., min_length=16)
    encryption_salt: str = "limit-engine:wallet-keys:v1"

    # Order monitor
    monitor_enabled: bool = True
    monitor_interval_seconds: float = 5.0
    monitor_max_workers: int = 4
    execution_lease_seconds: int = 300

    log_level: str = "INFO"


settings = Settings()
