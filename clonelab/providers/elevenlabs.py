"""
ElevenLabs provider adapter.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..config import Mode, ProviderCredentials, ProviderPolicy
from ..errors import (
    ProviderError,
    ProviderRejectedError,
    ProviderTimeoutError,
    RateLimitedError,
)
from ..media.storage import MediaStorage
from ..models import ExtractedAudioFile, VoiceSettings
from .base import ProviderAdapter
from .circuit import CircuitBreaker, CircuitConfig
from .pacing import ProviderCallPacer


def sanitize_voice_name(name: str, max_length: int = 100) -> str:
    """Strip bracketed tags and collapse whitespace; the API rejects some symbols."""
    cleaned = re.sub(r"[\[\]{}()<>]", "", name)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:max_length] or "Cloned Voice"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ElevenLabsProvider(ProviderAdapter):
    """
    ElevenLabs Instant Voice Cloning.

    Endpoints:
    - POST /voices/add (multipart) creates a voice
    - GET /voices/{voice_id} confirms it exists
    - POST /text-to-speech/{voice_id} renders speech
    """

    name = "elevenlabs"
    mode = Mode.LIVE

    def __init__(
        self,
        credentials: ProviderCredentials,
        storage: MediaStorage,
        policy: Optional[ProviderPolicy] = None,
        pacer: Optional[ProviderCallPacer] = None,
        breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not credentials.elevenlabs_api_key:
            raise ValueError("ElevenLabs API key is required")

        super().__init__(storage, policy=policy, pacer=pacer)
        self.api_key = credentials.elevenlabs_api_key
        self.model_id = credentials.elevenlabs_model_id
        self.base_url = credentials.elevenlabs_base_url.rstrip("/")
        self.breaker = breaker or CircuitBreaker(
            self.name,
            CircuitConfig(
                failure_threshold=self.policy.circuit_failure_threshold,
                timeout_seconds=self.policy.circuit_reset_s,
            ),
        )
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=max(self.policy.clone_timeout_s, self.policy.synthesize_timeout_s),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, translating transport failures into provider errors."""
        headers = {"xi-api-key": self.api_key, **kwargs.pop("headers", {})}
        try:
            return await self._get_client().request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"ElevenLabs {method} {path} timed out: {e}", provider=self.name)
        except httpx.HTTPError as e:
            raise ProviderError(f"ElevenLabs transport error: {e}", provider=self.name)

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status < 400:
            return

        try:
            detail: Any = response.json()
        except ValueError:
            detail = response.text[:500]

        if status == 429:
            raise RateLimitedError(
                f"ElevenLabs rate limit on {operation}",
                retry_after=_retry_after(response),
                provider=self.name,
                details={"detail": detail},
            )
        if 400 <= status < 500:
            raise ProviderRejectedError(
                f"ElevenLabs rejected {operation}: HTTP {status}",
                status_code=status,
                provider=self.name,
                details={"detail": detail},
            )
        raise ProviderError(
            f"ElevenLabs {operation} failed: HTTP {status}",
            provider=self.name,
            details={"status_code": status, "detail": detail},
        )

    # =========================================================================
    # Contract
    # =========================================================================

    async def clone(
        self,
        audio_files: Sequence[ExtractedAudioFile],
        name: str,
        description: str = "",
        labels: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Clone a voice using ElevenLabs Instant Voice Cloning."""
        files: List[Tuple[str, Tuple[str, bytes, str]]] = []
        for i, audio in enumerate(audio_files):
            data = await self.storage.download(audio.url)
            files.append(("files", (f"sample_{i}.wav", data, audio.content_type)))

        form = {"name": sanitize_voice_name(name)}
        if description:
            form["description"] = description[:500]
        if labels:
            form["labels"] = json.dumps({k: str(v) for k, v in labels.items()})

        async def request() -> str:
            response = await self._request("POST", "/voices/add", data=form, files=files)
            self._raise_for_status(response, "clone")
            try:
                voice_id = response.json().get("voice_id")
            except ValueError:
                raise ProviderError("ElevenLabs clone response was not JSON", provider=self.name)
            if not voice_id:
                raise ProviderError("ElevenLabs clone response had no voice_id", provider=self.name)
            return voice_id

        voice_id = await self.breaker.call(
            self._call, "clone", request, self.policy.clone_timeout_s
        )
        self.logger.info("voice_cloned", voice_id=voice_id, samples=len(files))
        return voice_id

    async def verify_exists(self, voice_id: str) -> bool:
        """Confirm the voice is retrievable with a fresh GET."""

        async def request() -> bool:
            response = await self._request("GET", f"/voices/{voice_id}")
            if response.status_code == 200:
                try:
                    return response.json().get("voice_id", voice_id) == voice_id
                except ValueError:
                    self.logger.warning("verify_response_unreadable", voice_id=voice_id)
                    return False
            if response.status_code == 429 or response.status_code >= 500:
                self._raise_for_status(response, "verify")
            return False

        exists = await self.breaker.call(
            self._call, "verify", request, self.policy.verify_timeout_s
        )
        self.logger.info("voice_verified", voice_id=voice_id, exists=exists)
        return exists

    async def synthesize(
        self,
        voice_id: str,
        text: str,
        settings: Optional[VoiceSettings] = None,
    ) -> bytes:
        """Synthesize speech with ElevenLabs."""
        settings = settings or VoiceSettings()
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": settings.model_dump(),
        }

        async def request() -> bytes:
            response = await self._request(
                "POST",
                f"/text-to-speech/{voice_id}",
                json=payload,
                headers={"Accept": "audio/mpeg"},
            )
            self._raise_for_status(response, "synthesize")
            return response.content

        return await self.breaker.call(
            self._call, "synthesize", request, self.policy.synthesize_timeout_s
        )
