"""Configuration management for YouTube channel discovery."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # YouTube API Configuration
    youtube_api_key: str = ""
    youtube_region_code: str = "US"
    youtube_relevance_language: str = "en"

    # Cache Settings
    cache_enabled: bool = True
    cache_dir: str = ".cache"
    l1_cache_ttl_hours: int = 24
    l2_cache_ttl_hours: int = 24 * 7
    l3_cache_ttl_hours: int = 24 * 7

    # Offline replay data
    offline_data_dir: str = ".offline-data"

    # Quota Settings
    quota_guard_preset: str = "standard"
    quota_budget_preset: str = "standard"
    quota_cooldown_hours: int = 12

    # Query Settings
    max_competitor_aliases: int = 3
    max_explore_queries: int = 4

    # Scoring Settings
    min_subscribers: int = 10000
    min_contract_words: int = 2
    min_commercial_words: int = 1
    min_total_score: int = 12
    top_n_channels: int = 5
    max_videos_per_channel: int = 10
    score_count_cap: int = 3
    title_multiplier: float = 1.5
    description_multiplier: float = 1.0
    channel_description_multiplier: float = 0.8
    competitor_mention_weight: int = 2

    # Concurrency
    max_concurrent_searches: int = 2

    log_level: str = "INFO"

    @property
    def l1_cache_ttl_seconds(self) -> int:
        """Convert L1 (query) cache TTL from hours to seconds."""
        return self.l1_cache_ttl_hours * 3600

    @property
    def l2_cache_ttl_seconds(self) -> int:
        """Convert L2 (channel) cache TTL from hours to seconds."""
        return self.l2_cache_ttl_hours * 3600

    @property
    def l3_cache_ttl_seconds(self) -> int:
        """Convert L3 (video) cache TTL from hours to seconds."""
        return self.l3_cache_ttl_hours * 3600

    @property
    def quota_cooldown_seconds(self) -> int:
        """Convert quota-exhaustion cooldown from hours to seconds."""
        return self.quota_cooldown_hours * 3600


# Global settings instance
settings = Settings()
