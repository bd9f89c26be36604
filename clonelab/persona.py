"""
Persona Synthesizer.

Derives display metadata for a cloned voice from its measured
characteristics. Output is a pure function of its inputs: every tie-break
draws from a ``random.Random`` seeded by the caller.
"""

import random
from typing import Dict, List, Optional

from .models import CloneCharacteristics, Persona, SimilarityMetrics

REGION_BY_ACCENT: Dict[str, str] = {
    "General American": "United States",
    "Southern U.S.": "Southern United States",
    "Midwest U.S.": "Midwest United States",
    "West Coast": "West Coast United States",
    "New York": "New York",
    "British RP": "United Kingdom",
    "Australian": "Australia",
    "Canadian": "Canada",
}

GLYPHS_BY_TONE: Dict[str, List[str]] = {
    "Warm": ["😊", "🌟", "💫", "🎈", "🌸"],
    "Bright": ["⭐", "✨", "🌞", "💡", "🎪"],
    "Deep": ["🎭", "🎼", "📚", "🎯", "🔥"],
    "Professional": ["💼", "👔", "📊", "🏆", "💻"],
}

GLYPHS_BY_ACCENT: Dict[str, List[str]] = {
    "General American": ["🇺🇸", "⭐", "🎤"],
    "Southern U.S.": ["🤠", "🌾", "🏡"],
    "West Coast": ["🌴", "🏄", "☀️"],
    "New York": ["🗽", "🌃", "🚕"],
    "Midwest U.S.": ["🌾", "🚜", "🏠"],
    "British RP": ["🎩", "☂️", "🇬🇧"],
    "Australian": ["🦘", "🌏", "🏄"],
    "Canadian": ["🍁", "🏔️", "❄️"],
}

DEFAULT_SAMPLE_TEXT = (
    "Hello! I'm pleased to assist you today. "
    "Let me walk you through this project and show you what we've prepared."
)

SAMPLE_TEXT_BY_ACCENT: Dict[str, str] = {
    "Southern U.S.": "Well hello there! I'm delighted to help you with your project today. "
    "Y'all are gonna love what we've put together for you.",
    "British RP": "Good afternoon! I'm rather pleased to assist you with your requirements today. "
    "Shall we proceed with the presentation?",
    "Australian": "G'day! I'm excited to walk you through this project. "
    "It's going to be absolutely brilliant, I reckon.",
    "Canadian": "Hello there! I'm happy to help you out with this, eh? "
    "Let's take a look at what we've got for you today.",
    "New York": "Hey there! I'm gonna walk you through this whole thing step by step. "
    "You're gonna love what we've put together.",
    "West Coast": "Hey! I'm stoked to share this project with you. "
    "It's gonna be totally awesome, and I think you'll really dig it.",
    "Midwest U.S.": "Hi there! I'm excited to show you what we've been working on. "
    "I think you'll find it really helpful for your needs.",
}

FAST_SAMPLE_TEXT = (
    "Hi there! I'm excited to share this with you today. "
    "We've got some amazing content ready to explore together!"
)
WARM_SAMPLE_TEXT = (
    "Hello, it's wonderful to meet you. "
    "I'd love to help you discover what we've created together today."
)
DEEP_SAMPLE_TEXT = (
    "Good day. I trust you'll find our discussion both informative and engaging "
    "as we explore these important topics."
)


def tone_label(characteristics: CloneCharacteristics) -> str:
    tone = characteristics.tone
    if tone.warmth > 0.8:
        return "Warm"
    if tone.brightness > 0.8:
        return "Bright"
    if tone.depth > 0.8:
        return "Deep"
    return "Professional"


def energy_label(characteristics: CloneCharacteristics) -> str:
    wpm = characteristics.pace.words_per_minute
    if wpm > 180:
        return "High"
    if wpm > 130:
        return "Medium"
    return "Low"


def sample_text(characteristics: CloneCharacteristics, accent: str) -> str:
    if characteristics.pace.words_per_minute > 180:
        return FAST_SAMPLE_TEXT
    if characteristics.tone.warmth > 0.8:
        return WARM_SAMPLE_TEXT
    if characteristics.tone.depth > 0.8:
        return DEEP_SAMPLE_TEXT
    return SAMPLE_TEXT_BY_ACCENT.get(accent, DEFAULT_SAMPLE_TEXT)


class PersonaSynthesizer:
    """Builds a Persona for a cloned voice."""

    def synthesize(
        self,
        characteristics: CloneCharacteristics,
        similarity: SimilarityMetrics,
        accent: str,
        seed: str,
        voice_id: Optional[str] = None,
        speaker_id: Optional[str] = None,
    ) -> Persona:
        rng = random.Random(seed)
        pitch = characteristics.pitch.average
        clarity = characteristics.quality.clarity

        if pitch > 160:
            base = rng.choice(["Emma", "Sophie"])
        elif pitch > 120:
            base = rng.choice(["Sarah", "Jessica"])
        else:
            base = rng.choice(["Michael", "David"])

        if characteristics.tone.warmth > 0.8:
            descriptor = "Warm"
        elif characteristics.tone.brightness > 0.8:
            descriptor = "Bright"
        elif similarity.confidence > 90:
            descriptor = "Professional"
        else:
            descriptor = "Corporate"

        if similarity.overall >= 90:
            suffix = " ★"
        elif similarity.overall >= 80:
            suffix = " ◇"
        else:
            suffix = ""

        if pitch > 180 and clarity > 0.9:
            age = 25 + rng.randrange(10)
        elif pitch > 140 and clarity > 0.8:
            age = 30 + rng.randrange(15)
        else:
            age = 40 + rng.randrange(20)

        tone = tone_label(characteristics)
        glyphs = GLYPHS_BY_TONE[tone] + GLYPHS_BY_ACCENT.get(accent, GLYPHS_BY_ACCENT["General American"])

        return Persona(
            voice_id=voice_id,
            speaker_id=speaker_id,
            name=f"{base} {descriptor}{suffix}",
            glyph=rng.choice(glyphs),
            sample_text=sample_text(characteristics, accent),
            estimated_age=age,
            tone=tone,
            energy=energy_label(characteristics),
            accent=accent,
            region=REGION_BY_ACCENT.get(accent, "Unknown Region"),
        )
