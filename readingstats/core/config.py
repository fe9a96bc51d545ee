from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "Reading Stats"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/readingstats"

    # Cache - "memory" or "redis"
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_key_prefix: str = "readingstats:"

    # Cache TTLs (seconds)
    daily_stats_ttl: int = 3600
    member_statistics_ttl: int = 3600
    member_achievements_ttl: int = 1800
    achievement_progress_ttl: int = 900
    leaderboard_ttl: int = 1800
    member_rank_ttl: int = 900
    global_overview_ttl: int = 3600
    content_analysis_ttl: int = 3600

    # Leaderboards
    leaderboard_default_limit: int = 50
    leaderboard_max_limit: int = 100

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "READINGSTATS_",
        "extra": "ignore",
    }


settings = Settings()
