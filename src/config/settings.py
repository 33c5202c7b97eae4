from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Application
    app_name: str = "code-notes-assistant"
    app_env: str = "development"
    debug: bool = False

    # Redis (optional persistence for query analysis settings)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    query_analysis_settings_key: str = "query_analysis:settings"
    query_analysis_settings_store: Literal["redis", "memory"] = "redis"

    # Query analysis
    query_analysis_preset: str = Field(
        default="balanced",
        description="Preset applied at startup: balanced, performance, accuracy, debug, disabled"
    )
    query_analysis_context_threshold: Optional[float] = Field(
        default=None,
        description="Overrides the preset context threshold when set"
    )
    query_analysis_strict_mode: Optional[bool] = Field(
        default=None,
        description="Overrides the preset strict mode when set"
    )

    # Classification cache
    enable_classification_cache: bool = True
    classification_cache_max_entries: int = 1024
    classification_cache_ttl: int = 300  # 5 minutes

    # Retrieval service
    semantic_search_url: str = Field(
        default="http://localhost:3001/api",
        description="Base URL of the notes semantic search service"
    )
    semantic_search_user_id: str = "default"
    semantic_search_timeout: int = 10  # seconds
    semantic_search_max_results: int = 3
    semantic_search_threshold: float = 0.7
    context_token_budget: int = 3500

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_scrub_sensitive: bool = True
    log_query_max_chars: int = Field(
        default=120,
        description="Longest user query kept in log records; 0 logs it whole"
    )

    @property
    def redis_url(self) -> str:
        """Construct Redis URL."""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
