"""
Entity Resolution Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Storage (use ENTITY_ prefix)
    db_path: Path = Field(
        default=Path("./data/entities.db"),
        alias="ENTITY_DB_PATH",
        description="SQLite database holding people, aliases and filter rules"
    )
    db_timeout: float = Field(
        default=5.0,
        alias="ENTITY_DB_TIMEOUT",
        description="SQLite busy timeout in seconds (capped by any caller deadline)"
    )

    # Server
    port: int = Field(default=8010, alias="ENTITY_PORT")
    host: str = Field(default="0.0.0.0", alias="ENTITY_HOST")

    log_level: str = Field(default="INFO", alias="ENTITY_LOG_LEVEL")

    # Internal email domains (comma-separated), used for is_internal and confidence
    internal_domains_raw: str = Field(
        default="",
        alias="ENTITY_INTERNAL_DOMAINS",
        description="Comma-separated internal email domains (e.g. 'acme.com,acme.io')"
    )

    @property
    def internal_domains(self) -> list[str]:
        """Parse comma-separated internal domains into a lowercase list."""
        if not self.internal_domains_raw:
            return []
        return [x.strip().lower() for x in self.internal_domains_raw.split(",") if x.strip()]

    # Resolution
    duplicate_search_limit: int = Field(
        default=10,
        alias="ENTITY_DUPLICATE_SEARCH_LIMIT",
        description="How many name-search candidates to score for potential duplicates"
    )
    batch_workers: int = Field(
        default=4,
        alias="ENTITY_BATCH_WORKERS",
        description="Thread pool size for batch participant resolution"
    )


settings = Settings()
