"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from newswire.services.data_ingestion.base import SourceConfig
from newswire.services.data_ingestion.rss import create_rss_configs
from newswire.services.data_ingestion.world_news import (
    DEFAULT_QUERIES,
    WORLD_NEWS_API_URL,
    create_world_news_config,
)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Newswire"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./newswire.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Sources (JSON list in the environment); RSS feeds by default
    sources: list[SourceConfig] = Field(default_factory=create_rss_configs)

    # World News API (source is added only when a key is set)
    world_news_api_key: Optional[str] = Field(default=None)
    world_news_api_url: str = Field(default=WORLD_NEWS_API_URL)
    world_news_language: str = Field(default="sv")
    world_news_country: str = Field(default="se")
    world_news_queries: list[dict] = Field(default_factory=lambda: list(DEFAULT_QUERIES))

    # Translation (DeepL)
    deepl_api_key: Optional[str] = Field(default=None)
    deepl_api_url: str = Field(default="https://api-free.deepl.com/v2/translate")
    translation_target_language: str = Field(default="EN")
    translation_batch_size: int = Field(default=5, ge=1)
    translation_batch_delay_seconds: float = Field(default=1.0, ge=0.0)

    # Enrichment
    enrichment_provider: Literal["gemini", "anthropic", "none"] = "gemini"
    google_ai_studio_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default="gemini-1.5-flash")
    anthropic_api_key: Optional[str] = Field(default=None)
    anthropic_model: str = Field(default="claude-3-haiku-20240307")
    enrichment_batch_size: int = Field(
        default=5,
        ge=1,
        description="Unenriched articles picked per background run",
    )
    enrichment_delay_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Pause between successive enrichment calls",
    )
    enrichment_timeout_seconds: float = Field(default=60.0, gt=0.0)

    # HTTP
    http_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Timeout for a single source request",
    )
    source_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Overall time allowed per source, all of its requests included",
    )
    request_delay_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Delay between successive requests to a quota-limited API",
    )

    # Articles
    article_ttl_days: int = Field(default=30, ge=1)
    summary_max_length: int = Field(default=300, ge=1)

    # Scheduler
    fetch_interval_minutes: int = Field(
        default=5,
        ge=1,
        description="Interval between ingestion cycles",
    )
    cleanup_hour: int = Field(default=3, ge=0, le=23)
    cleanup_minute: int = Field(default=0, ge=0, le=59)
    cleanup_grace_days: int = Field(
        default=0,
        ge=0,
        description="Extra days an expired article is kept before deletion",
    )

    @property
    def enrichment_enabled(self) -> bool:
        if self.enrichment_provider == "gemini":
            return bool(self.google_ai_studio_key)
        if self.enrichment_provider == "anthropic":
            return bool(self.anthropic_api_key)
        return False

    @property
    def translation_enabled(self) -> bool:
        return bool(self.deepl_api_key)


class IngestionConfig(BaseModel):
    """
    Everything an ingestion cycle needs, passed in at construction.

    Built from Settings in production and directly in tests.
    """

    sources: list[SourceConfig] = Field(default_factory=list)
    http_timeout_seconds: float = 15.0
    source_timeout_seconds: Optional[float] = 60.0
    request_delay_seconds: float = 0.1
    article_ttl_days: int = 30
    summary_max_length: int = 300
    enrichment_batch_size: int = 5
    enrichment_delay_seconds: float = 3.0
    cleanup_grace_days: int = 0

    world_news_api_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestionConfig":
        sources = list(settings.sources)
        if settings.world_news_api_key:
            sources.append(create_world_news_config(
                queries=settings.world_news_queries,
                language=settings.world_news_language,
                country=settings.world_news_country,
                endpoint=settings.world_news_api_url,
            ))

        return cls(
            sources=sources,
            http_timeout_seconds=settings.http_timeout_seconds,
            source_timeout_seconds=settings.source_timeout_seconds,
            request_delay_seconds=settings.request_delay_seconds,
            article_ttl_days=settings.article_ttl_days,
            summary_max_length=settings.summary_max_length,
            enrichment_batch_size=settings.enrichment_batch_size,
            enrichment_delay_seconds=settings.enrichment_delay_seconds,
            cleanup_grace_days=settings.cleanup_grace_days,
            world_news_api_key=settings.world_news_api_key,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
