"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Storage Configuration
    storage_backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    database_url: str = Field(default="sqlite+aiosqlite:///./data/dst_commands.db")
    database_echo: bool = Field(default=False)
    storage_namespace: str = Field(default="dst_app_", min_length=1)
    storage_quota_bytes: int = Field(default=4800000, ge=1)  # ~4.8MB per value
    storage_capacity_bytes: int = Field(default=5 * 1024 * 1024, ge=1)

    # Entity Keys
    command_key_prefix: str = Field(default="dst:", min_length=1)
    tag_key_prefix: str = Field(default="dsttag:", min_length=1)
    viewer_favorites_key: str = Field(default="dst-viewer-favorites", min_length=1)

    # Image Cache Configuration
    image_cache_prefix: str = Field(default="dst_img_", min_length=1)
    image_cache_ttl: int = Field(default=7 * 24 * 60 * 60, ge=1)  # 7 days
    memory_cache_size: int = Field(default=100, ge=1)

    # Remote Image Lookup
    wiki_api_url: str = Field(default="https://dontstarve.fandom.com/api.php")
    image_candidate_suffixes: List[str] = Field(default=["_Build", "", "_Portrait", "_Icon"])
    image_extension: str = Field(default=".png")
    wiki_timeout: Optional[float] = Field(default=None, gt=0)  # None = no client-side timeout

    # Editor
    save_success_delay: float = Field(default=1.5, ge=0)
    max_image_upload_bytes: int = Field(default=3 * 1024 * 1024, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite") and ":///" in v:
            db_path = v.split("///")[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("image_candidate_suffixes")
    @classmethod
    def validate_candidate_suffixes(cls, v):
        """At least one remote candidate is required."""
        if not v:
            raise ValueError("image_candidate_suffixes must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
