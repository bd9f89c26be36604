"""
Clone Lab error taxonomy.

Workflow-level errors are terminal for one invocation and map onto a
``FailureReason`` carried by the failed ``CloneOutcome``. Analysis-level
degradation is never raised; it is recorded in ``QualityMetrics.warnings``.
"""

from enum import Enum
from typing import Any, Dict, Optional


class FailureReason(str, Enum):
    """Reason attached to a FAILED clone outcome."""

    SPEAKER_NOT_FOUND = "speaker_not_found"
    ASSET_UNREACHABLE = "asset_unreachable"
    PROVIDER_REJECTED = "provider_rejected"
    RATE_LIMITED = "rate_limited"
    PROVIDER_INCONSISTENT = "provider_inconsistent"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    PERSISTENCE_ERROR = "persistence_error"
    INTERNAL_ERROR = "internal_error"


# Warning prefixes recorded on results rather than raised
SIMULATED_WARNING = "SIMULATED"
FALLBACK_WARNING = "FALLBACK"
ANALYSIS_DEGRADED = "ANALYSIS_DEGRADED"
ANALYSIS_FAILED = "ANALYSIS_FAILED"


class CloneLabError(Exception):
    """Base exception for pipeline operations."""

    reason: FailureReason = FailureReason.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CLONE_LAB_ERROR"
        self.provider = provider
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "reason": self.reason.value,
            "provider": self.provider,
            "details": self.details,
        }


class SpeakerNotFoundError(CloneLabError):
    """Speaker profile does not exist in the store."""

    reason = FailureReason.SPEAKER_NOT_FOUND

    def __init__(self, speaker_id: str, **kwargs):
        super().__init__(f"Speaker not found: {speaker_id}", code="SPEAKER_NOT_FOUND", **kwargs)
        self.speaker_id = speaker_id


class AssetUnreachableError(CloneLabError):
    """No usable audio asset could be extracted or reached."""

    reason = FailureReason.ASSET_UNREACHABLE

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="ASSET_UNREACHABLE", **kwargs)


# =============================================================================
# Provider errors
# =============================================================================


class ProviderError(CloneLabError):
    """Provider failed with a server or transport error."""

    reason = FailureReason.PROVIDER_ERROR

    def __init__(self, message: str, code: Optional[str] = None, **kwargs):
        super().__init__(message, code=code or "PROVIDER_ERROR", **kwargs)


class ProviderRejectedError(ProviderError):
    """Provider refused the request (4xx)."""

    reason = FailureReason.PROVIDER_REJECTED

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, code="PROVIDER_REJECTED", **kwargs)
        self.status_code = status_code


class RateLimitedError(ProviderError):
    """Provider rate limit exceeded (429)."""

    reason = FailureReason.RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, code="PROVIDER_RATE_LIMIT", **kwargs)
        self.retry_after = retry_after


class ProviderTimeoutError(ProviderError):
    """Provider operation timed out."""

    reason = FailureReason.TIMEOUT

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="PROVIDER_TIMEOUT", **kwargs)


class ProviderUnavailableError(ProviderError):
    """Provider circuit is open."""

    reason = FailureReason.PROVIDER_UNAVAILABLE

    def __init__(self, message: str, retry_after: float = 0.0, **kwargs):
        super().__init__(message, code="PROVIDER_UNAVAILABLE", **kwargs)
        self.retry_after = retry_after


class ProviderInconsistentError(CloneLabError):
    """Provider reported a clone that an independent check could not find."""

    reason = FailureReason.PROVIDER_INCONSISTENT

    def __init__(self, voice_id: str, **kwargs):
        super().__init__(
            f"Provider reported voice {voice_id} but it could not be retrieved",
            code="PROVIDER_INCONSISTENT",
            **kwargs,
        )
        self.voice_id = voice_id


# =============================================================================
# Media and persistence errors
# =============================================================================


class MediaError(CloneLabError):
    """Media fetch, decode or storage failure."""

    reason = FailureReason.ASSET_UNREACHABLE

    def __init__(self, message: str, code: Optional[str] = None, **kwargs):
        super().__init__(message, code=code or "MEDIA_ERROR", **kwargs)


class MediaTimeoutError(MediaError):
    """Media or storage call timed out."""

    reason = FailureReason.TIMEOUT

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="MEDIA_TIMEOUT", **kwargs)


class PersistenceError(CloneLabError):
    """Store write failed."""

    reason = FailureReason.PERSISTENCE_ERROR

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="PERSISTENCE_ERROR", **kwargs)


class InvalidTransitionError(CloneLabError):
    """Workflow attempted an illegal state transition."""

    def __init__(self, current: str, target: str, **kwargs):
        super().__init__(
            f"Invalid workflow transition {current} -> {target}",
            code="INVALID_TRANSITION",
            **kwargs,
        )
        self.current = current
        self.target = target
