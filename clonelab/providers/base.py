"""
Provider adapter interface.

A provider clones a voice from reference audio, answers independent
existence checks and synthesizes speech with a cloned voice. A provider's
clone response is not trusted until ``verify_exists`` confirms it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import structlog

from ..config import Mode, ProviderPolicy
from ..errors import AssetUnreachableError, MediaError, ProviderTimeoutError
from ..media.storage import MediaStorage
from ..models import ExtractedAudioFile, VoiceSettings
from .pacing import ProviderCallPacer

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ProviderAdapter(ABC):
    """
    Abstract base class for voice cloning providers.

    Subclasses implement ``clone``, ``verify_exists`` and ``synthesize``;
    every outbound call goes through ``_call`` so that it is paced and
    bounded by a timeout.
    """

    name: str = "provider"
    mode: Mode = Mode.LIVE

    def __init__(
        self,
        storage: MediaStorage,
        policy: Optional[ProviderPolicy] = None,
        pacer: Optional[ProviderCallPacer] = None,
    ):
        self.storage = storage
        self.policy = policy or ProviderPolicy()
        self.pacer = pacer or ProviderCallPacer(self.policy.min_call_interval_s)
        self.logger = logger.bind(adapter=self.name)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Release client resources."""

    # =========================================================================
    # Contract
    # =========================================================================

    @abstractmethod
    async def clone(
        self,
        audio_files: Sequence[ExtractedAudioFile],
        name: str,
        description: str = "",
        labels: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a voice from reference audio and return its provider voice id."""

    @abstractmethod
    async def verify_exists(self, voice_id: str) -> bool:
        """Independently confirm that a voice is retrievable."""

    @abstractmethod
    async def synthesize(
        self,
        voice_id: str,
        text: str,
        settings: Optional[VoiceSettings] = None,
    ) -> bytes:
        """Render ``text`` with a cloned voice."""

    # =========================================================================
    # Shared behavior
    # =========================================================================

    async def ensure_reachable(
        self,
        audio_files: Sequence[ExtractedAudioFile],
    ) -> List[ExtractedAudioFile]:
        """
        Check every asset URL independently and keep the reachable ones.

        Raises:
            AssetUnreachableError: if none is reachable
        """
        reachable: List[ExtractedAudioFile] = []
        for audio in audio_files:
            try:
                ok = await self.storage.exists(audio.url)
            except MediaError as e:
                self.logger.warning("asset_check_failed", url=audio.url, error=e.message)
                ok = False
            if ok:
                reachable.append(audio)
            else:
                self.logger.warning("asset_unreachable", url=audio.url)

        if not reachable:
            raise AssetUnreachableError(
                "None of the extracted audio files is reachable",
                provider=self.name,
                details={"checked": len(audio_files)},
            )
        return reachable

    async def _call(
        self,
        operation: str,
        request: Callable[[], Awaitable[T]],
        timeout_s: float,
    ) -> T:
        """Pace, then run ``request`` under a timeout."""
        await self.pacer.acquire()
        try:
            return await asyncio.wait_for(request(), timeout=timeout_s)
        except asyncio.TimeoutError:
            self.logger.error("provider_call_timeout", operation=operation, timeout_s=timeout_s)
            raise ProviderTimeoutError(
                f"{self.name} {operation} timed out after {timeout_s}s",
                provider=self.name,
            )
