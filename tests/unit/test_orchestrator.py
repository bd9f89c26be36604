"""Unit tests for the cloning orchestrator."""

import asyncio

import pytest

from clonelab.config import ExtractionConfig, Mode, ProviderPolicy, Settings
from clonelab.errors import (
    FALLBACK_WARNING,
    SIMULATED_WARNING,
    FailureReason,
    ProviderError,
    ProviderRejectedError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
    SpeakerNotFoundError,
)
from clonelab.extraction import AudioSegmentExtractor
from clonelab.identity import FingerprintMatcher
from clonelab.media import SimulatedMediaSource
from clonelab.models import SegmentQuality, SpeakerLifecycle, WorkflowState
from clonelab.orchestrator import CloningOrchestrator
from clonelab.persona import PersonaSynthesizer
from clonelab.providers import ProviderAdapter, ProviderCallPacer, SimulatedProvider
from clonelab.store import InMemoryStore


class FakeProvider(ProviderAdapter):
    """Live-mode provider with scripted responses."""

    name = "fake"
    mode = Mode.LIVE

    def __init__(self, storage, events=None, clone_error=None, exists=True, gate=None, on_clone=None):
        super().__init__(storage, pacer=ProviderCallPacer(0.0))
        self.events = events if events is not None else []
        self.clone_error = clone_error
        self.exists = exists
        self.gate = gate
        self.on_clone = on_clone
        self.clone_calls = 0

    async def clone(self, audio_files, name, description="", labels=None):
        self.clone_calls += 1
        self.events.append("clone")
        if self.on_clone is not None:
            self.on_clone()
        if self.gate is not None:
            await self.gate.wait()
        if self.clone_error is not None:
            raise self.clone_error
        return f"voice_{self.clone_calls}"

    async def verify_exists(self, voice_id):
        self.events.append("verify")
        return self.exists

    async def synthesize(self, voice_id, text, settings=None):
        return b""


class RecordingStore(InMemoryStore):
    def __init__(self, events):
        super().__init__()
        self.events = events

    async def save_voice(self, voice):
        self.events.append("save_voice")
        await super().save_voice(voice)


class BrokenPersonaStore(InMemoryStore):
    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    async def save_persona(self, persona):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("disk full")
        await super().save_persona(persona)


@pytest.fixture
def events():
    return []


@pytest.fixture
def recording_store(events):
    return RecordingStore(events)


def build_orchestrator(store, storage, provider, fallback=None, **settings_overrides):
    settings = Settings(
        log_json=False,
        extraction=ExtractionConfig(target_sample_rate=16000),
        provider=ProviderPolicy(
            mode=provider.mode,
            min_call_interval_s=0.0,
            allow_simulated_fallback=fallback is not None,
        ),
        **settings_overrides,
    )
    return CloningOrchestrator(
        store=store,
        extractor=AudioSegmentExtractor(SimulatedMediaSource(sample_rate=16000), storage, settings.extraction),
        provider=provider,
        fingerprints=FingerprintMatcher(store),
        personas=PersonaSynthesizer(),
        settings=settings,
        fallback_provider=fallback,
    )


class TestRequestClone:
    """Tests for single-speaker cloning."""

    @pytest.mark.asyncio
    async def test_live_clone_completes(self, recording_store, storage, events, speaker_factory):
        provider = FakeProvider(storage, events=events)
        orchestrator = build_orchestrator(recording_store, storage, provider)
        speaker = await recording_store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.status == WorkflowState.COMPLETED
        assert outcome.voice_id == "voice_1"
        assert not outcome.simulated
        assert outcome.warnings == []
        assert outcome.verified_at is not None
        assert events.index("verify") < events.index("save_voice")

        stored = await recording_store.get_speaker(speaker.id)
        assert stored.lifecycle == SpeakerLifecycle.CLONED
        assert stored.voice_id == "voice_1"
        assert stored.persona_id == outcome.persona_id
        assert all(seg.audio_url for seg in stored.segments)
        assert {seg.quality for seg in stored.segments} == {SegmentQuality.HIGH}
        persona = await recording_store.get_persona_for_speaker(speaker.id)
        assert persona.voice_id == "voice_1"
        fingerprint = await recording_store.get_fingerprint_by_signature(stored.fingerprint_signature)
        assert fingerprint.voice_id == "voice_1"

    @pytest.mark.asyncio
    async def test_unknown_speaker(self, store, storage):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))

        with pytest.raises(SpeakerNotFoundError):
            await orchestrator.request_clone("spk_missing")

    @pytest.mark.asyncio
    async def test_unnamed_speaker_takes_identity_name(self, store, storage, speaker_factory):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))
        speaker = await store.save_speaker(speaker_factory(name="", accent="British RP"))

        outcome = await orchestrator.request_clone(speaker.id)

        voice = await store.get_voice(outcome.voice_id)
        assert voice.name == "Hadley Cross"
        assert (await store.get_speaker(speaker.id)).name == "Hadley Cross"

    @pytest.mark.asyncio
    async def test_verification_failure_is_inconsistent(self, store, storage, speaker_factory):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage, exists=False))
        speaker = await store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.status == WorkflowState.FAILED
        assert outcome.reason == FailureReason.PROVIDER_INCONSISTENT
        assert await store.get_persona_for_speaker(speaker.id) is None
        assert (await store.get_speaker(speaker.id)).lifecycle == SpeakerLifecycle.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,reason",
        [
            (ProviderRejectedError("bad audio", status_code=400), FailureReason.PROVIDER_REJECTED),
            (RateLimitedError("slow down", retry_after=3.0), FailureReason.RATE_LIMITED),
            (ProviderTimeoutError("timed out"), FailureReason.TIMEOUT),
            (ProviderUnavailableError("circuit open"), FailureReason.PROVIDER_UNAVAILABLE),
            (ProviderError("boom"), FailureReason.PROVIDER_ERROR),
        ],
    )
    async def test_provider_errors_map_to_reasons(self, store, storage, speaker_factory, error, reason):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage, clone_error=error))
        speaker = await store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.status == WorkflowState.FAILED
        assert outcome.reason == reason
        assert outcome.voice_id is None

    @pytest.mark.asyncio
    async def test_missing_source_media(self, store, storage, speaker_factory):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))
        speaker = await store.save_speaker(speaker_factory(locator=None))

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.reason == FailureReason.ASSET_UNREACHABLE

    @pytest.mark.asyncio
    async def test_short_segments_fail_before_cloning(self, store, storage, speaker_factory):
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory(durations=[4.5] * 5))

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.reason == FailureReason.ASSET_UNREACHABLE
        assert provider.clone_calls == 0

    @pytest.mark.asyncio
    async def test_persistence_failure(self, storage, speaker_factory):
        store = BrokenPersonaStore()
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))
        speaker = await store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.status == WorkflowState.FAILED
        assert outcome.reason == FailureReason.PERSISTENCE_ERROR

    @pytest.mark.asyncio
    async def test_retry_after_persistence_failure_reuses_verified_voice(self, storage, speaker_factory):
        store = BrokenPersonaStore(failures=1)
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        first = await orchestrator.request_clone(speaker.id)
        second = await orchestrator.request_clone(speaker.id)

        assert first.reason == FailureReason.PERSISTENCE_ERROR
        assert first.voice_id is None
        assert second.succeeded
        assert second.voice_id == "voice_1"
        assert provider.clone_calls == 1
        assert (await store.get_persona_for_speaker(speaker.id)).voice_id == "voice_1"

    @pytest.mark.asyncio
    async def test_stale_voice_record_is_recloned(self, storage, speaker_factory):
        store = BrokenPersonaStore(failures=1)
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())
        await orchestrator.request_clone(speaker.id)

        provider.exists = False
        outcome = await orchestrator.request_clone(speaker.id)

        assert provider.clone_calls == 2
        assert outcome.reason == FailureReason.PROVIDER_INCONSISTENT

    @pytest.mark.asyncio
    async def test_fallback_to_simulated(self, store, storage, speaker_factory):
        provider = FakeProvider(storage, clone_error=ProviderUnavailableError("circuit open"))
        orchestrator = build_orchestrator(store, storage, provider, fallback=SimulatedProvider(storage))
        speaker = await store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.succeeded
        assert outcome.simulated
        assert outcome.voice_id.startswith("sim_")
        assert outcome.warnings[0].startswith(SIMULATED_WARNING)
        assert outcome.warnings[1].startswith(FALLBACK_WARNING)
        assert (await store.get_voice(outcome.voice_id)).provider == "simulated"

    @pytest.mark.asyncio
    async def test_no_fallback_without_opt_in(self, store, storage, speaker_factory):
        provider = FakeProvider(storage, clone_error=ProviderUnavailableError("circuit open"))
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        outcome = await orchestrator.request_clone(speaker.id)

        assert outcome.reason == FailureReason.PROVIDER_UNAVAILABLE
        assert not outcome.simulated

    @pytest.mark.asyncio
    async def test_completed_speaker_is_not_recloned(self, store, storage, speaker_factory):
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        first = await orchestrator.request_clone(speaker.id)
        second = await orchestrator.request_clone(speaker.id)

        assert second == first
        assert provider.clone_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_clone_once(self, store, storage, speaker_factory):
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        outcomes = await asyncio.gather(*(orchestrator.request_clone(speaker.id) for _ in range(3)))

        assert provider.clone_calls == 1
        assert {o.voice_id for o in outcomes} == {"voice_1"}

    @pytest.mark.asyncio
    async def test_failed_speaker_can_be_retried(self, store, storage, speaker_factory):
        provider = FakeProvider(storage, clone_error=ProviderError("boom"))
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        assert not (await orchestrator.request_clone(speaker.id)).succeeded
        provider.clone_error = None

        assert (await orchestrator.request_clone(speaker.id)).succeeded

    @pytest.mark.asyncio
    async def test_retries_count_a_single_detection(self, store, storage, speaker_factory):
        provider = FakeProvider(storage, clone_error=ProviderError("boom"))
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        for _ in range(3):
            assert not (await orchestrator.request_clone(speaker.id)).succeeded
        provider.clone_error = None
        assert (await orchestrator.request_clone(speaker.id)).succeeded

        stored = await store.get_speaker(speaker.id)
        fingerprint = await store.get_fingerprint_by_signature(stored.fingerprint_signature)
        assert fingerprint.detection_count == 1
        assert fingerprint.voice_id == stored.voice_id
        assert await store.count_fingerprints() == 1


class TestBatchClone:
    """Tests for source-level batch cloning."""

    @pytest.mark.asyncio
    async def test_skips_low_quality_and_unnamed(self, store, storage, speaker_factory):
        provider = FakeProvider(storage)
        orchestrator = build_orchestrator(store, storage, provider)
        good = [await store.save_speaker(speaker_factory(name=f"Host {i}")) for i in range(2)]
        await store.save_speaker(speaker_factory(name="Quiet Guest", quality_score=5.0))
        await store.save_speaker(speaker_factory(name="  "))

        outcomes = await orchestrator.batch_clone("src_1")

        assert sorted(o.speaker_id for o in outcomes) == sorted(s.id for s in good)
        assert all(o.succeeded for o in outcomes)
        assert provider.clone_calls == 2

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_batch(self, store, storage, speaker_factory):
        provider = FakeProvider(storage, exists=False)
        orchestrator = build_orchestrator(store, storage, provider)
        for i in range(3):
            await store.save_speaker(speaker_factory(name=f"Host {i}"))

        outcomes = await orchestrator.batch_clone("src_1")

        assert len(outcomes) == 3
        assert {o.reason for o in outcomes} == {FailureReason.PROVIDER_INCONSISTENT}

    @pytest.mark.asyncio
    async def test_cancellation_stops_pending_speakers(self, store, storage, speaker_factory):
        cancel = asyncio.Event()
        provider = FakeProvider(storage, on_clone=cancel.set)
        orchestrator = build_orchestrator(store, storage, provider, max_concurrent_clones=1)
        for i in range(3):
            await store.save_speaker(speaker_factory(name=f"Host {i}"))

        outcomes = await orchestrator.batch_clone("src_1", cancel_event=cancel)

        assert len(outcomes) == 1
        assert outcomes[0].succeeded
        assert provider.clone_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_source_is_empty(self, store, storage):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))
        assert await orchestrator.batch_clone("src_none") == []


class TestStatus:
    """Tests for workflow status queries."""

    @pytest.mark.asyncio
    async def test_status_lifecycle(self, store, storage, speaker_factory):
        gate = asyncio.Event()
        provider = FakeProvider(storage, gate=gate)
        orchestrator = build_orchestrator(store, storage, provider)
        speaker = await store.save_speaker(speaker_factory())

        assert (await orchestrator.get_status(speaker.id)).state == WorkflowState.NOT_STARTED

        task = asyncio.create_task(orchestrator.request_clone(speaker.id))
        while provider.clone_calls == 0:
            await asyncio.sleep(0.01)
        assert (await orchestrator.get_status(speaker.id)).state == WorkflowState.CLONING

        gate.set()
        await task

        status = await orchestrator.get_status(speaker.id)
        assert status.state == WorkflowState.COMPLETED
        assert status.voice_id == "voice_1"

    @pytest.mark.asyncio
    async def test_status_of_unknown_speaker(self, store, storage):
        orchestrator = build_orchestrator(store, storage, FakeProvider(storage))

        with pytest.raises(SpeakerNotFoundError):
            await orchestrator.get_status("spk_missing")


class TestSimulatedService:
    """End-to-end cloning through the service in simulated mode."""

    @pytest.mark.asyncio
    async def test_simulated_clone_is_marked(self, service, speaker_factory):
        assert service.mode == Mode.SIMULATED
        speaker = await service.register_speaker(speaker_factory())

        outcome = await service.request_clone(speaker.id)

        assert outcome.succeeded
        assert outcome.simulated
        assert outcome.warnings[0].startswith(SIMULATED_WARNING)
        assert 75 <= outcome.similarity.overall <= 95
        assert (await service.get_status(speaker.id)).state == WorkflowState.COMPLETED
