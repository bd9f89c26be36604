"""
Transcription adapters for measured intelligibility.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from ..errors import ProviderError, ProviderTimeoutError

logger = structlog.get_logger(__name__)


class TranscriptionAdapter(ABC):
    """Speech-to-text used to compare generated audio with its source text."""

    @abstractmethod
    async def transcribe(self, audio: bytes, content_type: str = "audio/wav") -> str:
        """Return the transcript of ``audio``."""


class WhisperTranscriptionAdapter(TranscriptionAdapter):
    """OpenAI audio transcription endpoint."""

    BASE_URL = "https://api.openai.com/v1"

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        timeout_s: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self._client = client
        self.logger = logger.bind(adapter="whisper")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                timeout=self.timeout_s,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def transcribe(self, audio: bytes, content_type: str = "audio/wav") -> str:
        extension = "mp3" if "mpeg" in content_type else "wav"
        try:
            response = await self._get_client().post(
                "/audio/transcriptions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                data={"model": self.model, "response_format": "json"},
                files={"file": (f"audio.{extension}", audio, content_type)},
            )
        except httpx.TimeoutException:
            raise ProviderTimeoutError("Transcription timed out", provider="openai")
        except httpx.HTTPError as e:
            raise ProviderError(f"Transcription transport error: {e}", provider="openai")

        if response.status_code != 200:
            raise ProviderError(
                f"Transcription failed: HTTP {response.status_code}",
                provider="openai",
                details={"status_code": response.status_code},
            )
        return response.json().get("text", "")


def normalize_text(text: str) -> str:
    text = re.sub(r"[^\w\s']", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def text_similarity(expected: str, actual: str) -> float:
    """1 - normalized word-level Levenshtein distance, in [0, 1]."""
    a = normalize_text(expected).split()
    b = normalize_text(actual).split()
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    previous = list(range(len(b) + 1))
    for i, word_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, word_b in enumerate(b, start=1):
            cost = 0 if word_a == word_b else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        previous = current

    return 1.0 - previous[-1] / max(len(a), len(b))
