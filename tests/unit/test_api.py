"""Tests for the HTTP API."""

import pytest

SPEAKER = {
    "name": "Jordan Hayes",
    "accent": "British RP",
    "characteristics": {"pitch": "High", "tempo": "Fast", "emotion": "Professional", "clarity": "Excellent"},
    "quality_score": 8.5,
    "segments": [
        {"start": 0.0, "end": 12.0, "text": "Welcome back to the programme.", "confidence": 0.9},
        {"start": 13.0, "end": 28.0, "text": "Today we look at the new release.", "confidence": 0.85},
    ],
    "source_id": "src_api",
    "source_locator": "file:///recordings/src_api.wav",
}


class TestHealth:
    """Tests for the health endpoint."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["mode"] == "simulated"


class TestSpeakerEndpoints:
    """Tests for speaker registration, cloning and status."""

    @pytest.mark.asyncio
    async def test_register_clone_status(self, client):
        response = await client.post("/v1/speakers", json=SPEAKER)
        assert response.status_code == 201
        speaker_id = response.json()["id"]

        status = await client.get(f"/v1/speakers/{speaker_id}/status")
        assert status.json()["state"] == "not_started"

        response = await client.post(f"/v1/speakers/{speaker_id}/clone")
        assert response.status_code == 200
        outcome = response.json()
        assert outcome["status"] == "completed"
        assert outcome["simulated"] is True
        assert outcome["voice_id"].startswith("sim_")

        status = await client.get(f"/v1/speakers/{speaker_id}/status")
        assert status.json()["state"] == "completed"
        assert status.json()["voice_id"] == outcome["voice_id"]

    @pytest.mark.asyncio
    async def test_caller_assigned_id(self, client):
        response = await client.post("/v1/speakers", json={**SPEAKER, "id": "spk_fixed"})
        assert response.json()["id"] == "spk_fixed"

    @pytest.mark.asyncio
    async def test_failed_clone_returns_outcome_body(self, client):
        body = {**SPEAKER, "segments": [{"start": 0.0, "end": 4.0, "text": "Hi.", "confidence": 0.9}]}
        speaker_id = (await client.post("/v1/speakers", json=body)).json()["id"]

        response = await client.post(f"/v1/speakers/{speaker_id}/clone")

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["reason"] == "asset_unreachable"

    @pytest.mark.asyncio
    async def test_unknown_speaker_is_404(self, client):
        response = await client.post("/v1/speakers/spk_missing/clone")
        assert response.status_code == 404
        assert response.json()["code"] == "SPEAKER_NOT_FOUND"

        response = await client.get("/v1/speakers/spk_missing/status")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_batch_clone(self, client):
        await client.post("/v1/speakers", json=SPEAKER)
        await client.post("/v1/speakers", json={**SPEAKER, "name": "Low Quality", "quality_score": 3.0})

        response = await client.post("/v1/sources/src_api/clone")

        data = response.json()
        assert data["completed"] == 1
        assert data["failed"] == 0
        assert len(data["outcomes"]) == 1


class TestAnalysisEndpoints:
    """Tests for quality scoring and identity matching."""

    @pytest.mark.asyncio
    async def test_quality(self, client, wav_factory):
        response = await client.post(
            "/v1/quality",
            files={"file": ("out.wav", wav_factory(2.0), "audio/wav")},
            data={"text": "Hello there, this is a quality check."},
        )

        assert response.status_code == 200
        data = response.json()
        assert 0.0 <= data["overall"] <= 1.0
        assert isinstance(data["is_production_ready"], bool)
        assert data["recommendations"]

    @pytest.mark.asyncio
    async def test_quality_with_reference(self, client, wav_factory):
        response = await client.post(
            "/v1/quality",
            files={
                "file": ("out.wav", wav_factory(2.0), "audio/wav"),
                "reference": ("ref.wav", wav_factory(2.0, seed=3), "audio/wav"),
            },
            data={"text": "Hello there."},
        )

        assert response.status_code == 200
        assert response.json()["warnings"] == []

    @pytest.mark.asyncio
    async def test_empty_audio_is_400(self, client):
        response = await client.post(
            "/v1/quality",
            files={"file": ("out.wav", b"", "audio/wav")},
            data={"text": "Hello"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_identity_match(self, client):
        body = {"accent": "British RP", "characteristics": SPEAKER["characteristics"], "quality_score": 8.0}

        first = (await client.post("/v1/identities/match", json=body)).json()
        second = (await client.post("/v1/identities/match", json=body)).json()

        assert first["matched"] is False
        assert second["matched"] is True
        assert second["fingerprint"]["detection_count"] == 2
        assert second["name"] == first["name"]
