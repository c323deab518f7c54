"""Application configuration via environment variables."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    port: int = 8080
    log_level: str = "INFO"

    # Database
    db_user: str = "paylink"
    db_password: str = "secret"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "paylink"
    database_url: Optional[str] = None  # Overrides the DB_* fields when set

    # Broker
    redis_host: str = "localhost"
    redis_port: int = 6379

    # Providers
    midtrans_server_key: str = ""
    midtrans_sandbox: bool = True
    xendit_api_key: str = ""
    xendit_webhook_token: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    provider_timeout_seconds: float = 10.0

    # HTTP
    read_timeout_seconds: int = 10
    max_webhook_body_bytes: int = 1 << 20
    require_merchant_auth: bool = False

    # Worker
    run_worker: bool = True
    worker_pop_timeout: float = Field(default=5.0, ge=1.0, le=30.0)
    worker_error_backoff: float = Field(default=1.0, ge=0.1)
    retry_delay_seconds: float = Field(default=5.0, ge=0.0)
    max_retries: int = Field(default=3, ge=0)
    shutdown_timeout: float = 30.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/0"


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

settings = Settings()
