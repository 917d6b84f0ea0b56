from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    database_url: str = "sqlite:///./jobscout.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Redis configuration
    redis_url: str = "redis://localhost:6379"
    cache_ttl_minutes: int = 15
    aggregate_cache_ttl_seconds: int = 300

    # OpenAI configuration (agents fall back to deterministic output when empty)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0

    # JSearch via RapidAPI
    jsearch_api_key: str = ""
    jsearch_api_host_url: str = "https://jsearch.p.rapidapi.com"
    rate_limit_cooldown_seconds: int = 60

    # Glassdoor via RapidAPI (company ratings)
    glassdoor_rapidapi_key: str = ""
    glassdoor_rapidapi_host: str = "glassdoor-real-time.p.rapidapi.com"

    # Search pipeline
    normalization_concurrency: int = 8
    match_agent_pool_size: int = 5

    class Config:
        env_file = ".env"

    @property
    def match_ttl_seconds(self) -> int:
        return max(self.cache_ttl_minutes * 60, 60)


@lru_cache
def get_settings() -> Settings:
    return Settings()
