from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    app_name: str = "Minerals Share Queue"
    app_env: str = "development"

    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "minerals"
    db_user: str = "postgres"
    db_password: str = ""
    db_url: Optional[str] = None

    secret_key: str = "change-me"

    default_currency: str = "UGX"

    queue_poll_interval_seconds: float = 30.0
    wait_days_funded: float = 3.0
    wait_days_partial: float = 7.0
    wait_days_worst: float = 30.0

    reconcile_tolerance: float = 0.01

    buyback_min_fund_threshold: float = 0.0
    buyback_max_orders_per_batch: int = 10
    buyback_power_high: float = 5_000_000
    buyback_power_moderate: float = 2_000_000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra='ignore')

    @property
    def async_database_url(self) -> str:
        if self.db_url:
            return self.db_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

settings = Settings()
