"""
Configuration settings for proximity search
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import DEFAULT_PRECISION


class SearchSettings(BaseSettings):
    """Search and record-store settings, read from ``LOSTFOUND_*`` variables"""

    # Range queries
    range_query_timeout: float = Field(default=5.0, gt=0)  # seconds per attempt
    max_retries: int = Field(default=2, ge=0)
    retry_backoff: float = Field(default=0.2, ge=0)  # first retry delay, doubled each time
    max_backoff: float = Field(default=2.0, ge=0)

    # Geohash. Planned keys never get longer than the stored ones.
    geohash_precision: int = Field(default=DEFAULT_PRECISION, ge=1, le=DEFAULT_PRECISION)
    geohash_field: str = "geohash"

    # Record store (HTTP)
    store_base_url: str = "http://127.0.0.1:8080"
    store_api_key: Optional[str] = None
    store_collection: str = "foundPosts"
    http_timeout: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LOSTFOUND_",
        env_file=".env",
        extra="ignore",
    )

    def backoff_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.max_backoff, self.retry_backoff * (2 ** (attempt - 1)))
