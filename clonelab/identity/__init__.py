"""
Speaker identity resolution.
"""

from .fingerprint import (
    FingerprintMatcher,
    compare_characteristic,
    match_confidence,
    synthesize_name,
    voice_signature,
)

__all__ = [
    "FingerprintMatcher",
    "compare_characteristic",
    "match_confidence",
    "synthesize_name",
    "voice_signature",
]
