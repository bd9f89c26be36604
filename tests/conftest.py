"""Shared pytest fixtures for testing."""

from typing import AsyncGenerator, Callable, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from clonelab.config import (
    ExtractionConfig,
    Mode,
    ProviderCredentials,
    ProviderPolicy,
    QualityConfig,
    Settings,
    StorageConfig,
)
from clonelab.media import LocalStorageBackend, MediaStorage, encode_wav, synthesize_voice_like
from clonelab.models import AudioSegment, SpeakerProfile, VoiceCharacteristics
from clonelab.service import CloneLabService
from clonelab.store import InMemoryStore


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Simulated-mode settings with local storage under tmp_path."""
    return Settings(
        log_json=False,
        storage=StorageConfig(provider="local", local_path=str(tmp_path / "media")),
        credentials=ProviderCredentials(elevenlabs_api_key="", openai_api_key=""),
        extraction=ExtractionConfig(target_sample_rate=16000),
        provider=ProviderPolicy(mode=Mode.SIMULATED, min_call_interval_s=0.0),
        quality=QualityConfig(cache_enabled=True),
    )


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest_asyncio.fixture
async def storage(tmp_path) -> AsyncGenerator[MediaStorage, None]:
    media = MediaStorage(LocalStorageBackend(str(tmp_path / "media")), timeout_s=5.0)
    yield media
    await media.close()


# =============================================================================
# Audio and Speaker Factories
# =============================================================================


@pytest.fixture
def wav_factory() -> Callable[..., bytes]:
    """Build speech-like WAV bytes."""

    def make(
        duration: float = 2.0,
        sample_rate: int = 16000,
        seed: int = 0,
        fundamental: float = 140.0,
    ) -> bytes:
        samples = synthesize_voice_like(duration, sample_rate=sample_rate, seed=seed, fundamental=fundamental)
        return encode_wav(samples, sample_rate)

    return make


@pytest.fixture
def speaker_factory() -> Callable[..., SpeakerProfile]:
    """Build a detected speaker with cloneable segments."""

    def make(
        name: str = "Jordan Hayes",
        source_id: Optional[str] = "src_1",
        quality_score: float = 8.0,
        accent: str = "General American",
        durations: Optional[List[float]] = None,
        characteristics: Optional[VoiceCharacteristics] = None,
        locator: Optional[str] = "file:///recordings/src_1.wav",
    ) -> SpeakerProfile:
        segments = []
        cursor = 0.0
        for duration in durations or [12.0, 15.0, 11.0]:
            segments.append(
                AudioSegment(
                    start=cursor,
                    end=cursor + duration,
                    text="Welcome back everyone, today we are going to walk through the new release together.",
                    confidence=0.9,
                )
            )
            cursor += duration + 1.0
        return SpeakerProfile(
            name=name,
            accent=accent,
            characteristics=characteristics or VoiceCharacteristics(
                pitch="medium", tempo="moderate", emotion="confident", clarity="good"
            ),
            quality_score=quality_score,
            segments=segments,
            source_id=source_id,
            source_locator=locator,
        )

    return make


# =============================================================================
# Service and API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def service(settings: Settings, store: InMemoryStore) -> AsyncGenerator[CloneLabService, None]:
    svc = CloneLabService.from_settings(settings, store=store)
    yield svc
    await svc.close()


@pytest_asyncio.fixture
async def app(service: CloneLabService) -> FastAPI:
    """Create test FastAPI application."""
    from clonelab.api import create_app

    return create_app(service=service)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
