"""
Cloning Orchestrator.

Drives each speaker through validate, clone, verify and persist. A clone is
only reported complete after an independent existence check and after every
linked record is stored. Failures are terminal for the invocation and are
never retried automatically.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..analysis.acoustics import AcousticProfiler, VoiceSample
from ..config import Mode, Settings
from ..errors import (
    FALLBACK_WARNING,
    SIMULATED_WARNING,
    AssetUnreachableError,
    CloneLabError,
    FailureReason,
    PersistenceError,
    ProviderInconsistentError,
    ProviderUnavailableError,
    SpeakerNotFoundError,
)
from ..extraction import AudioSegmentExtractor
from ..identity import FingerprintMatcher
from ..media.audio import decode_wav
from ..models import (
    ClonedVoice,
    CloneCharacteristics,
    CloneOutcome,
    ExtractedAudioFile,
    IdentityDecision,
    IdentityDecisionKind,
    SimilarityMetrics,
    SpeakerLifecycle,
    SpeakerProfile,
    WorkflowState,
    WorkflowStatus,
)
from ..persona import PersonaSynthesizer
from ..providers.base import ProviderAdapter
from ..providers.simulated import SimulatedProvider
from ..store import PersistenceStore
from .workflow import CloneWorkflow

logger = structlog.get_logger(__name__)


class CloningOrchestrator:
    """
    Per-speaker cloning state machine.

    Workflows for the same speaker are serialized; a speaker that already
    has a completed outcome is not cloned again.
    """

    def __init__(
        self,
        store: PersistenceStore,
        extractor: AudioSegmentExtractor,
        provider: ProviderAdapter,
        fingerprints: FingerprintMatcher,
        personas: PersonaSynthesizer,
        profiler: Optional[AcousticProfiler] = None,
        settings: Optional[Settings] = None,
        fallback_provider: Optional[SimulatedProvider] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.provider = provider
        self.fingerprints = fingerprints
        self.personas = personas
        self.profiler = profiler or AcousticProfiler()
        self.settings = settings or Settings()
        self.fallback_provider = fallback_provider

        self._speaker_locks: Dict[str, asyncio.Lock] = {}
        self._active: Dict[str, CloneWorkflow] = {}

    @property
    def fallback_enabled(self) -> bool:
        return (
            self.settings.provider.allow_simulated_fallback
            and self.fallback_provider is not None
            and self.provider.mode == Mode.LIVE
        )

    def _lock_for(self, speaker_id: str) -> asyncio.Lock:
        lock = self._speaker_locks.get(speaker_id)
        if lock is None:
            lock = self._speaker_locks[speaker_id] = asyncio.Lock()
        return lock

    # =========================================================================
    # Operations
    # =========================================================================

    async def request_clone(self, speaker_id: str) -> CloneOutcome:
        """
        Clone one speaker's voice.

        Args:
            speaker_id: Stored speaker to clone

        Returns:
            Terminal CloneOutcome, COMPLETED or FAILED with a reason

        Raises:
            SpeakerNotFoundError: if the speaker is not in the store
        """
        if await self.store.get_speaker(speaker_id) is None:
            raise SpeakerNotFoundError(speaker_id)

        async with self._lock_for(speaker_id):
            existing = await self.store.get_outcome(speaker_id)
            if existing is not None and existing.succeeded:
                logger.info("clone_already_completed", speaker_id=speaker_id, voice_id=existing.voice_id)
                return existing

            # Re-read under the lock so a retry sees what earlier attempts recorded
            speaker = await self.store.get_speaker(speaker_id)

            workflow = CloneWorkflow(speaker_id=speaker_id)
            self._active[speaker_id] = workflow
            try:
                try:
                    outcome = await self._run(workflow, speaker)
                except CloneLabError as e:
                    outcome = await self._fail(workflow, e.reason, e.message)
                except Exception as e:
                    logger.exception("clone_workflow_crashed", speaker_id=speaker_id)
                    outcome = await self._fail(workflow, FailureReason.INTERNAL_ERROR, str(e))
            finally:
                self._active.pop(speaker_id, None)

        return outcome

    async def batch_clone(
        self,
        source_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CloneOutcome]:
        """
        Clone every eligible speaker of a source recording.

        Speakers below the batch quality floor or without a name are
        skipped. Cancellation is honored before each speaker starts;
        clones already in flight run to completion.
        """
        speakers = await self.store.list_speakers_by_source(source_id)
        eligible = [
            s for s in speakers
            if s.quality_score >= self.settings.min_batch_quality and s.name.strip()
        ]
        log = logger.bind(source_id=source_id)
        log.info("batch_clone_started", speakers=len(speakers), eligible=len(eligible))

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_clones)

        async def run_one(speaker: SpeakerProfile) -> Optional[CloneOutcome]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    log.info("batch_speaker_cancelled", speaker_id=speaker.id)
                    return None
                return await self.request_clone(speaker.id)

        results = await asyncio.gather(*(run_one(s) for s in eligible))
        outcomes = [o for o in results if o is not None]

        log.info(
            "batch_clone_completed",
            completed=sum(1 for o in outcomes if o.succeeded),
            failed=sum(1 for o in outcomes if not o.succeeded),
            cancelled=len(eligible) - len(outcomes),
        )
        return outcomes

    async def get_status(self, speaker_id: str) -> WorkflowStatus:
        workflow = self._active.get(speaker_id)
        if workflow is not None:
            return workflow.status()

        outcome = await self.store.get_outcome(speaker_id)
        if outcome is not None:
            return WorkflowStatus(
                speaker_id=speaker_id,
                state=outcome.status,
                reason=outcome.reason,
                voice_id=outcome.voice_id,
                updated_at=outcome.completed_at,
            )

        if await self.store.get_speaker(speaker_id) is None:
            raise SpeakerNotFoundError(speaker_id)
        return WorkflowStatus(speaker_id=speaker_id, state=WorkflowState.NOT_STARTED)

    # =========================================================================
    # Workflow
    # =========================================================================

    async def _run(self, workflow: CloneWorkflow, speaker: SpeakerProfile) -> CloneOutcome:
        log = logger.bind(speaker_id=speaker.id)
        provider = self.provider
        if provider.mode == Mode.SIMULATED:
            self._mark_simulated(workflow)

        # Step 1: Validate assets and resolve identity
        workflow.transition(WorkflowState.VALIDATING)
        if not speaker.source_locator:
            raise AssetUnreachableError(f"Speaker {speaker.id} has no source media")

        await self.store.update_speaker(speaker.id, lifecycle=SpeakerLifecycle.EXTRACTING)
        audio_files = await self.extractor.extract(speaker.id, speaker.segments, speaker.source_locator)
        await self.store.update_extracted_segments(
            speaker.id, {f.segment_id: (f.url, f.quality) for f in audio_files}
        )
        audio_files = await provider.ensure_reachable(audio_files)

        identity = await self._resolve_identity(speaker)
        name = speaker.name.strip() or identity.name

        # Step 2: Clone
        workflow.transition(WorkflowState.CLONING)
        await self.store.update_speaker(speaker.id, lifecycle=SpeakerLifecycle.CLONING)
        provider, voice_id = await self._clone(workflow, provider, audio_files, name, speaker)
        log.info("clone_reported", voice_id=voice_id, provider=provider.name)

        # Step 3: Verify independently of the clone response
        workflow.transition(WorkflowState.VERIFYING)
        if not await provider.verify_exists(voice_id):
            raise ProviderInconsistentError(voice_id, provider=provider.name)
        verified_at = datetime.utcnow()
        workflow.voice_id = voice_id

        # Step 4: Persist and link
        workflow.transition(WorkflowState.PERSISTING)
        characteristics, similarity = await self._profile(provider, audio_files, speaker)
        outcome = await self._persist(
            workflow, speaker, provider, identity, name, voice_id,
            audio_files, characteristics, similarity, verified_at,
        )

        workflow.transition(WorkflowState.COMPLETED)
        log.info(
            "clone_completed",
            voice_id=voice_id,
            persona_id=outcome.persona_id,
            simulated=outcome.simulated,
            similarity=similarity.overall,
        )
        return outcome

    async def _resolve_identity(self, speaker: SpeakerProfile) -> IdentityDecision:
        """
        Resolve the speaker's identity once.

        The signature is recorded on the speaker before cloning, so a retry
        reuses the fingerprint instead of counting another detection.
        """
        if speaker.fingerprint_signature:
            fingerprint = await self.store.get_fingerprint_by_signature(speaker.fingerprint_signature)
            if fingerprint is not None:
                return IdentityDecision(
                    matched=True,
                    kind=IdentityDecisionKind.MATCHED,
                    confidence=fingerprint.match_confidence,
                    name=fingerprint.name,
                    fingerprint=fingerprint,
                )

        identity = await self.fingerprints.match_or_create(
            speaker.accent, speaker.characteristics, speaker.quality_score
        )
        await self.store.update_speaker(speaker.id, fingerprint_signature=identity.fingerprint.signature)
        return identity

    async def _reusable_voice(self, provider: ProviderAdapter, speaker: SpeakerProfile) -> Optional[str]:
        """Voice left by an earlier attempt that was verified but not fully persisted."""
        voice = await self.store.get_voice_for_speaker(speaker.id)
        if voice is None or voice.provider != provider.name:
            return None
        if not await provider.verify_exists(voice.voice_id):
            logger.warning("stale_voice_record", speaker_id=speaker.id, voice_id=voice.voice_id)
            return None
        logger.info("clone_reused", speaker_id=speaker.id, voice_id=voice.voice_id)
        return voice.voice_id

    async def _clone(
        self,
        workflow: CloneWorkflow,
        provider: ProviderAdapter,
        audio_files: Sequence[ExtractedAudioFile],
        name: str,
        speaker: SpeakerProfile,
    ) -> Tuple[ProviderAdapter, str]:
        description = f"Cloned from detected speaker {name} ({speaker.accent})"
        labels = {"accent": speaker.accent, "speaker_id": speaker.id}
        if speaker.source_id:
            labels["source_id"] = speaker.source_id

        voice_id = await self._reusable_voice(provider, speaker)
        if voice_id is not None:
            return provider, voice_id

        try:
            return provider, await provider.clone(audio_files, name, description, labels)
        except ProviderUnavailableError as e:
            if not self.fallback_enabled:
                raise
            logger.warning("clone_fallback_to_simulated", speaker_id=speaker.id, error=e.message)
            fallback = self.fallback_provider
            self._mark_simulated(workflow)
            workflow.warnings.append(
                f"{FALLBACK_WARNING}: live provider unavailable ({e.message}), cloned with the simulated provider"
            )
            return fallback, await fallback.clone(audio_files, name, description, labels)

    async def _profile(
        self,
        provider: ProviderAdapter,
        audio_files: Sequence[ExtractedAudioFile],
        speaker: SpeakerProfile,
    ) -> Tuple[CloneCharacteristics, SimilarityMetrics]:
        if isinstance(provider, SimulatedProvider):
            return provider.simulate_profile(speaker.id)

        samples = []
        for audio in audio_files:
            decoded = decode_wav(await provider.storage.download(audio.url))
            samples.append(VoiceSample(decoded.samples, decoded.sample_rate, text=audio.text))
        characteristics = self.profiler.characteristics(samples)
        return characteristics, self.profiler.similarity(samples, characteristics)

    async def _persist(
        self,
        workflow: CloneWorkflow,
        speaker: SpeakerProfile,
        provider: ProviderAdapter,
        identity: IdentityDecision,
        name: str,
        voice_id: str,
        audio_files: Sequence[ExtractedAudioFile],
        characteristics: CloneCharacteristics,
        similarity: SimilarityMetrics,
        verified_at: datetime,
    ) -> CloneOutcome:
        persona = self.personas.synthesize(
            characteristics,
            similarity,
            speaker.accent,
            seed=speaker.id,
            voice_id=voice_id,
            speaker_id=speaker.id,
        )
        outcome = CloneOutcome(
            speaker_id=speaker.id,
            status=WorkflowState.COMPLETED,
            voice_id=voice_id,
            similarity=similarity,
            characteristics=characteristics,
            warnings=list(workflow.warnings),
            simulated=workflow.simulated,
            persona_id=persona.id,
            verified_at=verified_at,
        )

        try:
            await self.store.save_voice(
                ClonedVoice(
                    voice_id=voice_id,
                    speaker_id=speaker.id,
                    name=name,
                    provider=provider.name,
                    simulated=workflow.simulated,
                    characteristics=characteristics,
                    similarity=similarity,
                    sample_urls=[f.url for f in audio_files],
                    labels={"accent": speaker.accent, "identity": identity.kind.value},
                )
            )
            await self.store.save_persona(persona)
            await self.store.update_speaker(
                speaker.id,
                name=name,
                lifecycle=SpeakerLifecycle.CLONED,
                voice_id=voice_id,
                persona_id=persona.id,
                fingerprint_signature=identity.fingerprint.signature,
            )
            await self.store.link_fingerprint_voice(identity.fingerprint.signature, voice_id)
            await self.store.save_outcome(outcome)
        except CloneLabError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to persist clone of {speaker.id}: {e}") from e

        return outcome

    async def _fail(self, workflow: CloneWorkflow, reason: FailureReason, message: str) -> CloneOutcome:
        workflow.fail(reason)
        logger.warning(
            "clone_failed",
            speaker_id=workflow.speaker_id,
            reason=reason.value,
            error=message,
            state_path=[s.value for s in workflow.visited],
        )

        outcome = CloneOutcome(
            speaker_id=workflow.speaker_id,
            status=WorkflowState.FAILED,
            reason=reason,
            message=message,
            warnings=list(workflow.warnings),
            simulated=workflow.simulated,
        )
        try:
            await self.store.update_speaker(workflow.speaker_id, lifecycle=SpeakerLifecycle.FAILED)
            await self.store.save_outcome(outcome)
        except Exception:
            logger.exception("failed_outcome_not_persisted", speaker_id=workflow.speaker_id)
        return outcome

    @staticmethod
    def _mark_simulated(workflow: CloneWorkflow) -> None:
        if workflow.simulated:
            return
        workflow.simulated = True
        workflow.warnings.insert(
            0, f"{SIMULATED_WARNING}: voice produced by the simulated provider, not a live clone"
        )
