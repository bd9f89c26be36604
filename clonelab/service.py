"""
Clone Lab service facade.

Wires the pipeline components from settings and exposes the five public
operations. Components are constructed explicitly here and injected; tests
build a service directly from fakes.
"""

import asyncio
from typing import List, Optional

import structlog

from .analysis import AcousticProfiler, QualityAnalyzer, QualityCache, WhisperTranscriptionAdapter
from .analysis.transcription import TranscriptionAdapter
from .config import Mode, Settings, get_settings, resolve_mode
from .extraction import AudioSegmentExtractor
from .identity import FingerprintMatcher
from .media import MediaSourceAdapter, MediaStorage, SimulatedMediaSource, StorageMediaSource
from .models import (
    CloneOutcome,
    IdentityDecision,
    QualityMetrics,
    SpeakerProfile,
    VoiceCharacteristics,
    WorkflowStatus,
)
from .orchestrator import CloningOrchestrator
from .persona import PersonaSynthesizer
from .providers import ProviderAdapter, ProviderCallPacer, SimulatedProvider, create_provider
from .store import InMemoryStore, PersistenceStore

logger = structlog.get_logger(__name__)


class CloneLabService:
    """Public entry point of the cloning pipeline."""

    def __init__(
        self,
        store: PersistenceStore,
        storage: MediaStorage,
        provider: ProviderAdapter,
        orchestrator: CloningOrchestrator,
        fingerprints: FingerprintMatcher,
        analyzer: QualityAnalyzer,
        settings: Settings,
        transcriber: Optional[TranscriptionAdapter] = None,
    ):
        self.store = store
        self.storage = storage
        self.provider = provider
        self.orchestrator = orchestrator
        self.fingerprints = fingerprints
        self.analyzer = analyzer
        self.settings = settings
        self.transcriber = transcriber

    @property
    def mode(self) -> Mode:
        return self.provider.mode

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[PersistenceStore] = None,
        source: Optional[MediaSourceAdapter] = None,
    ) -> "CloneLabService":
        """Build every component from configuration."""
        settings = settings or get_settings()
        mode = resolve_mode(settings)
        store = store or InMemoryStore()
        storage = MediaStorage.from_config(settings.storage)

        pacer = ProviderCallPacer(settings.provider.min_call_interval_s)
        provider = create_provider(settings, storage, pacer=pacer, mode=mode)
        fallback = None
        if mode == Mode.LIVE and settings.provider.allow_simulated_fallback:
            fallback = SimulatedProvider(storage, policy=settings.provider)

        if source is None:
            source = SimulatedMediaSource() if mode == Mode.SIMULATED else StorageMediaSource(storage)

        fingerprints = FingerprintMatcher(store)
        orchestrator = CloningOrchestrator(
            store=store,
            extractor=AudioSegmentExtractor(source, storage, settings.extraction),
            provider=provider,
            fingerprints=fingerprints,
            personas=PersonaSynthesizer(),
            profiler=AcousticProfiler(),
            settings=settings,
            fallback_provider=fallback,
        )

        transcriber = None
        if settings.quality.use_transcription and settings.credentials.openai_api_key:
            transcriber = WhisperTranscriptionAdapter(
                api_key=settings.credentials.openai_api_key,
                model=settings.credentials.openai_transcription_model,
            )
        cache = None
        if settings.quality.cache_enabled:
            cache = QualityCache(
                ttl_s=settings.quality.cache_ttl_s,
                max_entries=settings.quality.cache_max_entries,
            )

        logger.info(
            "clone_lab_configured",
            mode=mode.value,
            provider=provider.name,
            storage=settings.storage.provider,
            fallback=fallback is not None,
            transcription=transcriber is not None,
        )
        return cls(
            store=store,
            storage=storage,
            provider=provider,
            orchestrator=orchestrator,
            fingerprints=fingerprints,
            analyzer=QualityAnalyzer(transcriber=transcriber, cache=cache),
            settings=settings,
            transcriber=transcriber,
        )

    async def close(self) -> None:
        await self.provider.close()
        if self.orchestrator.fallback_provider is not None:
            await self.orchestrator.fallback_provider.close()
        if isinstance(self.transcriber, WhisperTranscriptionAdapter):
            await self.transcriber.close()
        await self.storage.close()

    # =========================================================================
    # Operations
    # =========================================================================

    async def register_speaker(self, speaker: SpeakerProfile) -> SpeakerProfile:
        """Record a detected speaker so it can be cloned."""
        return await self.store.save_speaker(speaker)

    async def request_clone(self, speaker_id: str) -> CloneOutcome:
        return await self.orchestrator.request_clone(speaker_id)

    async def batch_clone(
        self,
        source_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CloneOutcome]:
        return await self.orchestrator.batch_clone(source_id, cancel_event=cancel_event)

    async def analyze_quality(
        self,
        audio: bytes,
        text: str,
        reference: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> QualityMetrics:
        return await self.analyzer.analyze(audio, text, reference=reference, content_type=content_type)

    async def match_or_create_identity(
        self,
        accent: str,
        characteristics: VoiceCharacteristics,
        quality_score: float,
    ) -> IdentityDecision:
        return await self.fingerprints.match_or_create(accent, characteristics, quality_score)

    async def get_status(self, speaker_id: str) -> WorkflowStatus:
        return await self.orchestrator.get_status(speaker_id)
