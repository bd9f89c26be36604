"""Unit tests for clone provider adapters."""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from clonelab.config import Mode, ProviderCredentials, ProviderPolicy, Settings, resolve_mode
from clonelab.errors import (
    AssetUnreachableError,
    ProviderError,
    ProviderRejectedError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
)
from clonelab.media import decode_wav
from clonelab.models import ExtractedAudioFile, SegmentQuality
from clonelab.providers import (
    CircuitBreaker,
    CircuitConfig,
    CircuitState,
    ElevenLabsProvider,
    ProviderCallPacer,
    SimulatedProvider,
    create_provider,
    sanitize_voice_name,
)

BASE_URL = "https://api.elevenlabs.io/v1"


class Recorder:
    """MockTransport handler returning queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return response


def make_provider(storage, handler, policy=None, breaker=None) -> ElevenLabsProvider:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return ElevenLabsProvider(
        credentials=ProviderCredentials(elevenlabs_api_key="test-key"),
        storage=storage,
        policy=policy or ProviderPolicy(min_call_interval_s=0.0),
        pacer=ProviderCallPacer(0.0),
        breaker=breaker,
        client=client,
    )


@pytest_asyncio.fixture
async def audio_files(storage, wav_factory):
    files = []
    for i in range(2):
        url = await storage.upload(wav_factory(1.0, seed=i))
        files.append(
            ExtractedAudioFile(
                segment_id=f"seg_{i}",
                url=url,
                duration=1.0,
                quality=SegmentQuality.LOW,
                sample_rate=16000,
            )
        )
    return files


class TestElevenLabsProvider:
    """Tests for ElevenLabsProvider."""

    def test_requires_api_key(self, storage):
        with pytest.raises(ValueError):
            ElevenLabsProvider(ProviderCredentials(elevenlabs_api_key=""), storage)

    @pytest.mark.asyncio
    async def test_clone_posts_multipart(self, storage, audio_files):
        handler = Recorder(httpx.Response(200, json={"voice_id": "v1"}))
        provider = make_provider(storage, handler)

        voice_id = await provider.clone(audio_files, "Jordan <Hayes>", "desc", labels={"accent": "British RP"})

        assert voice_id == "v1"
        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/voices/add"
        assert request.headers["xi-api-key"] == "test-key"
        body = request.content
        assert b'name="name"' in body
        assert b"Jordan Hayes" in body
        assert body.count(b'name="files"') == 2
        await provider.close()

    @pytest.mark.asyncio
    async def test_clone_without_voice_id_is_provider_error(self, storage, audio_files):
        provider = make_provider(storage, Recorder(httpx.Response(200, json={})))

        with pytest.raises(ProviderError):
            await provider.clone(audio_files, "Name")

    @pytest.mark.asyncio
    async def test_clone_non_json_body_is_provider_error(self, storage, audio_files):
        provider = make_provider(storage, Recorder(httpx.Response(200, text="<html>ok</html>")))

        with pytest.raises(ProviderError):
            await provider.clone(audio_files, "Name")

    @pytest.mark.asyncio
    async def test_rate_limit(self, storage, audio_files):
        handler = Recorder(httpx.Response(429, headers={"Retry-After": "7"}, json={"detail": "slow down"}))
        provider = make_provider(storage, handler)

        with pytest.raises(RateLimitedError) as exc_info:
            await provider.clone(audio_files, "Name")

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_rejected(self, storage, audio_files):
        provider = make_provider(storage, Recorder(httpx.Response(400, json={"detail": "bad audio"})))

        with pytest.raises(ProviderRejectedError) as exc_info:
            await provider.clone(audio_files, "Name")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_server_errors_open_circuit(self, storage, audio_files):
        handler = Recorder(httpx.Response(503))
        breaker = CircuitBreaker("elevenlabs", CircuitConfig(failure_threshold=3))
        provider = make_provider(storage, handler, breaker=breaker)

        for _ in range(3):
            with pytest.raises(ProviderError):
                await provider.clone(audio_files, "Name")

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(ProviderUnavailableError):
            await provider.clone(audio_files, "Name")
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_rejections_do_not_open_circuit(self, storage, audio_files):
        breaker = CircuitBreaker("elevenlabs", CircuitConfig(failure_threshold=2))
        provider = make_provider(storage, Recorder(httpx.Response(422)), breaker=breaker)

        for _ in range(4):
            with pytest.raises(ProviderRejectedError):
                await provider.clone(audio_files, "Name")

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_clone_timeout(self, storage, audio_files):
        async def slow(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"voice_id": "v1"})

        policy = ProviderPolicy(min_call_interval_s=0.0, clone_timeout_s=0.01)
        provider = make_provider(storage, slow, policy=policy)

        with pytest.raises(ProviderTimeoutError):
            await provider.clone(audio_files, "Name")

    @pytest.mark.asyncio
    async def test_verify_exists(self, storage):
        handler = Recorder(
            httpx.Response(200, json={"voice_id": "v1"}),
            httpx.Response(200, json={"voice_id": "other"}),
            httpx.Response(404, json={"detail": "voice_not_found"}),
        )
        provider = make_provider(storage, handler)

        assert await provider.verify_exists("v1") is True
        assert await provider.verify_exists("v1") is False
        assert await provider.verify_exists("v1") is False
        assert handler.requests[0].url.path == "/v1/voices/v1"

    @pytest.mark.asyncio
    async def test_verify_server_error_raises(self, storage):
        provider = make_provider(storage, Recorder(httpx.Response(500)))

        with pytest.raises(ProviderError):
            await provider.verify_exists("v1")

    @pytest.mark.asyncio
    async def test_verify_non_json_body_is_not_found(self, storage):
        provider = make_provider(storage, Recorder(httpx.Response(200, text="<html>ok</html>")))

        for _ in range(5):
            assert await provider.verify_exists("v1") is False
        assert provider.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_synthesize(self, storage):
        handler = Recorder(httpx.Response(200, content=b"\xff\xfbmp3"))
        provider = make_provider(storage, handler)

        audio = await provider.synthesize("v1", "Hello there")

        assert audio == b"\xff\xfbmp3"
        payload = json.loads(handler.requests[0].content)
        assert payload["text"] == "Hello there"
        assert payload["voice_settings"]["stability"] == 0.75

    @pytest.mark.asyncio
    async def test_ensure_reachable(self, storage, audio_files, tmp_path):
        provider = make_provider(storage, Recorder(httpx.Response(200)))
        missing = audio_files[0].model_copy(update={"url": (tmp_path / "media" / "gone.wav").as_uri()})

        reachable = await provider.ensure_reachable([missing, audio_files[1]])
        assert reachable == [audio_files[1]]

        with pytest.raises(AssetUnreachableError):
            await provider.ensure_reachable([missing])

    def test_sanitize_voice_name(self):
        assert sanitize_voice_name("  <b>Alex</b>  Rivera ") == "bAlex/b Rivera"
        assert sanitize_voice_name("") == "Cloned Voice"
        assert len(sanitize_voice_name("x" * 300)) == 100


class TestSimulatedProvider:
    """Tests for SimulatedProvider."""

    @pytest.mark.asyncio
    async def test_clone_is_deterministic_and_verifiable(self, storage, audio_files):
        provider = SimulatedProvider(storage)

        first = await provider.clone(audio_files, "Name")
        second = await provider.clone(audio_files, "Name")

        assert first == second
        assert first.startswith("sim_")
        assert await provider.verify_exists(first)
        assert not await provider.verify_exists("sim_unknown")

    @pytest.mark.asyncio
    async def test_synthesize_returns_wav(self, storage):
        audio = await SimulatedProvider(storage).synthesize("sim_1", "one two three four five")
        assert decode_wav(audio).duration == pytest.approx(2.0, abs=1e-3)

    def test_simulated_profile_ranges(self, storage):
        characteristics, similarity = SimulatedProvider(storage).simulate_profile("spk_1")

        assert 120 <= characteristics.pitch.average <= 180
        assert 140 <= characteristics.pace.words_per_minute <= 180
        assert 75 <= similarity.overall <= 95
        assert SimulatedProvider(storage).simulate_profile("spk_1") == (characteristics, similarity)


class TestProviderCallPacer:
    """Tests for ProviderCallPacer."""

    @pytest.mark.asyncio
    async def test_enforces_minimum_interval(self):
        now = [100.0]
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            now[0] += delay

        pacer = ProviderCallPacer(1.5, clock=lambda: now[0], sleep=fake_sleep)

        assert await pacer.acquire() == 0.0
        now[0] += 0.5
        assert await pacer.acquire() == pytest.approx(1.0)
        now[0] += 2.0
        assert await pacer.acquire() == 0.0
        assert sleeps == [pytest.approx(1.0)]


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self):
        now = [0.0]
        breaker = CircuitBreaker("t", CircuitConfig(failure_threshold=1, timeout_seconds=10), clock=lambda: now[0])

        async def fail():
            raise ProviderError("boom")

        async def succeed():
            return "ok"

        with pytest.raises(ProviderError):
            await breaker.call(fail)
        assert breaker.state == CircuitState.OPEN
        assert breaker.retry_after() == 10

        now[0] = 11.0
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(succeed) == "ok"
        assert breaker.state == CircuitState.CLOSED


class TestProviderFactory:
    """Tests for mode resolution and provider creation."""

    def test_resolve_mode(self):
        explicit = Settings(provider=ProviderPolicy(mode=Mode.SIMULATED),
                            credentials=ProviderCredentials(elevenlabs_api_key="k"))
        keyed = Settings(provider=ProviderPolicy(mode=None),
                         credentials=ProviderCredentials(elevenlabs_api_key="k"))
        bare = Settings(provider=ProviderPolicy(mode=None),
                        credentials=ProviderCredentials(elevenlabs_api_key=""))

        assert resolve_mode(explicit) == Mode.SIMULATED
        assert resolve_mode(keyed) == Mode.LIVE
        assert resolve_mode(bare) == Mode.SIMULATED

    def test_create_provider(self, storage):
        live = Settings(provider=ProviderPolicy(mode=Mode.LIVE),
                        credentials=ProviderCredentials(elevenlabs_api_key="k"))
        simulated = Settings(provider=ProviderPolicy(mode=Mode.SIMULATED))

        assert isinstance(create_provider(live, storage), ElevenLabsProvider)
        assert isinstance(create_provider(simulated, storage), SimulatedProvider)
