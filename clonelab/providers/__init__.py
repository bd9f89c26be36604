"""
Clone provider adapters.
"""

from typing import Optional

from ..config import Mode, Settings, resolve_mode
from ..media.storage import MediaStorage
from .base import ProviderAdapter
from .circuit import CircuitBreaker, CircuitConfig, CircuitState
from .elevenlabs import ElevenLabsProvider, sanitize_voice_name
from .pacing import ProviderCallPacer
from .simulated import SimulatedProvider


def create_provider(
    settings: Settings,
    storage: MediaStorage,
    pacer: Optional[ProviderCallPacer] = None,
    mode: Optional[Mode] = None,
) -> ProviderAdapter:
    """Create the provider for the resolved mode."""
    mode = mode or resolve_mode(settings)
    pacer = pacer or ProviderCallPacer(settings.provider.min_call_interval_s)

    if mode == Mode.LIVE:
        return ElevenLabsProvider(
            credentials=settings.credentials,
            storage=storage,
            policy=settings.provider,
            pacer=pacer,
        )
    return SimulatedProvider(storage, policy=settings.provider)


__all__ = [
    "CircuitBreaker",
    "CircuitConfig",
    "CircuitState",
    "ElevenLabsProvider",
    "ProviderAdapter",
    "ProviderCallPacer",
    "SimulatedProvider",
    "create_provider",
    "sanitize_voice_name",
]
