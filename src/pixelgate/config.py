from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "local"
    app_host: str = "0.0.0.0"
    app_port: int = 8080
    log_level: str = "INFO"

    postgres_host: str = "postgres"
    postgres_port: int = 5432
    postgres_db: str = "pixelgate"
    postgres_user: str = "pixelgate"
    postgres_password: str = "pixelgate"
    postgres_pool_size: int = 10

    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0

    admin_token: str = ""

    # quota applied when a key has no explicit limits, or the request is unsigned
    default_rate_limit_per_minute: int = 60
    default_rate_limit_per_day: int = 10_000

    config_cache_ttl_seconds: float = 60.0
    usage_throttle_seconds: int = 30
    request_log_retention_days: int = 30
    request_log_cleanup_probability: float = 0.01

    require_signed_urls: bool = True

    processor_url: str = "http://processor:3000/process"
    processor_timeout_seconds: float = 30.0
    store_timeout_seconds: float = 5.0

    @property
    def postgres_dsn(self) -> str:
        # asyncpg DSN
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


settings = Settings()  # reads from environment
