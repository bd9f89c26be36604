"""
Configuration for the Clone Lab pipeline.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Mode(str, Enum):
    """Provider operating mode, resolved once at construction."""

    LIVE = "live"
    SIMULATED = "simulated"


class StorageConfig(BaseSettings):
    """Storage configuration for extracted audio."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    provider: str = Field(default="local", description="Storage provider (local, s3)")
    bucket_name: str = Field(default="clone-lab-audio", description="Storage bucket name")
    region: str = Field(default="us-east-1", description="Storage region")

    # S3 specific
    aws_access_key_id: str = Field(default="", description="AWS access key")
    aws_secret_access_key: str = Field(default="", description="AWS secret key")

    # Local storage
    local_path: str = Field(default="/data/clone-lab", description="Local storage path")

    timeout_s: float = Field(default=30.0, gt=0, description="Timeout for storage calls")


class ProviderCredentials(BaseSettings):
    """API credentials for external providers."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ElevenLabs
    elevenlabs_api_key: str = Field(default="", description="ElevenLabs API key")
    elevenlabs_model_id: str = Field(
        default="eleven_multilingual_v2",
        description="Default ElevenLabs model",
    )
    elevenlabs_base_url: str = Field(
        default="https://api.elevenlabs.io/v1",
        description="ElevenLabs API base URL",
    )

    # OpenAI (optional transcription)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_transcription_model: str = Field(default="whisper-1", description="Transcription model")


class ExtractionConfig(BaseSettings):
    """Segment selection and normalization settings."""

    model_config = SettingsConfigDict(env_prefix="EXTRACTION_")

    min_segment_duration_s: float = Field(default=10.0, description="Shortest usable segment")
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0, description="Candidate confidence floor")
    max_segments: int = Field(default=3, ge=1, le=25, description="Segments extracted per speaker")
    target_sample_rate: int = Field(default=44100, description="Sample rate of extracted audio")
    fetch_timeout_s: float = Field(default=60.0, gt=0, description="Timeout per media fetch")


class ProviderPolicy(BaseSettings):
    """Call policy for the clone provider."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    mode: Optional[Mode] = Field(default=None, description="Force live or simulated mode")
    min_call_interval_s: float = Field(
        default=1.5,
        ge=0.0,
        description="Minimum delay between successive provider calls",
    )
    clone_timeout_s: float = Field(default=120.0, gt=0, description="Timeout for clone calls")
    verify_timeout_s: float = Field(default=30.0, gt=0, description="Timeout for existence checks")
    synthesize_timeout_s: float = Field(default=60.0, gt=0, description="Timeout for synthesis")

    circuit_failure_threshold: int = Field(default=3, ge=1, description="Failures before opening")
    circuit_reset_s: float = Field(default=60.0, gt=0, description="Open time before half-open")
    allow_simulated_fallback: bool = Field(
        default=False,
        description="Clone with the simulated provider while the live circuit is open",
    )


class QualityConfig(BaseSettings):
    """Quality analyzer settings."""

    model_config = SettingsConfigDict(env_prefix="QUALITY_")

    cache_enabled: bool = Field(default=True, description="Cache analysis results")
    cache_ttl_s: float = Field(default=1800.0, gt=0, description="Cache entry lifetime")
    cache_max_entries: int = Field(default=256, ge=1, description="Maximum cached results")
    use_transcription: bool = Field(
        default=False,
        description="Measure transcription accuracy with the ASR adapter when credentials exist",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="clone-lab", description="Service name")
    host: str = Field(default="0.0.0.0", description="Host to bind")
    port: int = Field(default=8090, ge=1024, le=65535, description="Port to listen on")
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Render logs as JSON")

    # Concurrency
    max_concurrent_clones: int = Field(
        default=2,
        ge=1,
        le=16,
        description="Speakers cloned concurrently within a batch",
    )
    min_batch_quality: float = Field(
        default=7.0,
        ge=0.0,
        le=10.0,
        description="Speakers below this quality score are skipped by batch cloning",
    )

    # Sub-configurations
    storage: StorageConfig = Field(default_factory=StorageConfig)
    credentials: ProviderCredentials = Field(default_factory=ProviderCredentials)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    provider: ProviderPolicy = Field(default_factory=ProviderPolicy)
    quality: QualityConfig = Field(default_factory=QualityConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in valid:
            raise ValueError(f"Invalid log level: {v}")
        return v.lower()


def resolve_mode(settings: Settings) -> Mode:
    """Resolve the provider mode: an explicit override wins, else credentials decide."""
    if settings.provider.mode is not None:
        return settings.provider.mode
    if settings.credentials.elevenlabs_api_key:
        return Mode.LIVE
    return Mode.SIMULATED


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
