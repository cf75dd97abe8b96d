"""
Configuration loader for the background-removal package.

Environment variables (prefixed with ``BGREMOVER_``) are centralized here to
keep the rest of the code focused on image processing and to make
operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import registry


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BGREMOVER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    # Model selection + engine
    default_model: str = Field("u2netp")
    execution_providers: List[str] = Field(default_factory=lambda: ["CPUExecutionProvider"])

    # Weight retrieval
    model_cache_dir: Optional[Path] = Field(None)
    request_timeout_seconds: int = Field(30)
    download_chunk_size: int = Field(1024 * 1024)

    # Output
    output_filename: str = Field("removed-bg.png")
    log_level: str = Field("INFO")

    # Debugging
    debug: bool = Field(False)
    debug_output_dir: Path = Field(Path("/tmp/bgremover_debug"))

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: str) -> str:
        if v not in registry.all_ids():
            raise ValueError(
                "BGREMOVER_DEFAULT_MODEL must be one of " + "|".join(registry.all_ids())
            )
        return v

    @field_validator("download_chunk_size", "request_timeout_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()
