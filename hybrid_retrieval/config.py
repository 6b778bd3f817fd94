"""
Configuration management for the hybrid retrieval engine.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrievalSettings(BaseSettings):
    """Strategy fan-out and fusion configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RETRIEVAL_",
        env_file=".env",
        extra="ignore",
    )

    # RRF parameter
    rrf_k: int = Field(default=60, ge=1)

    # Search settings
    default_top_k: int = Field(default=5, ge=1)
    candidate_multiplier: int = Field(default=2, ge=1)

    # Strategy families run for every query variant
    blend_alphas: list[float] = Field(default=[0.3, 0.7])
    include_dense: bool = True
    include_lexical: bool = False

    # Lexical scoring
    bm25_k1: float = Field(default=1.5, gt=0.0)
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0)
    lexical_epsilon: float = Field(default=1e-4, gt=0.0)

    # Fan-out worker pool
    max_workers: int = Field(default=4, ge=1)
    run_timeout_seconds: float | None = Field(default=None, gt=0.0)

    @field_validator("blend_alphas")
    @classmethod
    def validate_alphas(cls, v: list[float]) -> list[float]:
        """Every blend weight must lie in [0, 1]."""
        for alpha in v:
            if not 0.0 <= alpha <= 1.0:
                raise ValueError(f"blend alpha {alpha} outside [0, 1]")
        return v


class RerankerSettings(BaseSettings):
    """Semantic reranking configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RERANKER_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = True
    weight: float = Field(default=0.7, ge=0.0, le=1.0)


class ExpansionSettings(BaseSettings):
    """Query expansion intake configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPANSION_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = True
    # Including the original query
    max_variants: int = Field(default=4, ge=1)


class MonitoringSettings(BaseSettings):
    """Monitoring and observability configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    service_name: str = Field(default="hybrid-retrieval", alias="SERVICE_NAME")
    enable_metrics: bool = Field(default=True, alias="ENABLE_METRICS")
    enable_tracing: bool = Field(default=False, alias="ENABLE_TRACING")
    otlp_endpoint: str = Field(default="http://localhost:4317", alias="OTLP_ENDPOINT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT")


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    reranker: RerankerSettings = Field(default_factory=RerankerSettings)
    expansion: ExpansionSettings = Field(default_factory=ExpansionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()


# Convenience accessors
def get_retrieval_settings() -> RetrievalSettings:
    return get_settings().retrieval


def get_reranker_settings() -> RerankerSettings:
    return get_settings().reranker


def get_monitoring_settings() -> MonitoringSettings:
    return get_settings().monitoring
