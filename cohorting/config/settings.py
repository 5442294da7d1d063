"""Engine settings loaded from environment variables."""
from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cohorting.models.enums import LibraryResolutionPolicy


class Settings(BaseSettings):
    """Engine configuration loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Remote expression-evaluation service
    evaluation_endpoint: str = Field(
        default="http://localhost:8080/fhir",
        description="Base URL of the CQL $evaluate service"
    )
    evaluation_timeout_seconds: float = Field(default=60.0, description="Per-call timeout for $evaluate")
    evaluation_retry_attempts: int = Field(default=3, description="Attempts on connection errors")
    evaluation_retry_wait_seconds: float = Field(default=2.0, description="Base wait between retries")

    # Subject batches
    batch_max_workers: int = Field(default=1, description="Subjects evaluated concurrently (1 = sequential)")
    batch_deadline_seconds: Optional[float] = Field(
        default=None,
        description="Overall deadline for one cohort/datamart operation"
    )

    # Criteria tree interpretation
    library_resolution_policy: LibraryResolutionPolicy = Field(
        default=LibraryResolutionPolicy.LENIENT,
        description="How Library search errors are handled (lenient falls back to the canonical tail)"
    )
    cache_library_resolution: bool = Field(default=True, description="Memoize canonical -> library id")
    max_reference_depth: int = Field(default=32, description="Maximum nesting of EvidenceVariable references")

    # Pseudonymization
    pseudonym_secret: str = Field(default="", description="Shared secret for identifier pseudonyms")

    # Application
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Optional JSON log file path")


@lru_cache
def get_settings() -> Settings:
    """Get cached engine settings."""
    return Settings()
