import asyncio
import base64
import socket

import pytest

from mandalamind.schemas.mandala import MandalaCreate
from mandalamind.services.ai_base import LocalMandalaService
from tests.conftest import no_sleep


def brainwave(attention=65, meditation=45, signal=90):
    return {"attention": attention, "meditation": meditation, "signalQuality": signal, "timestamp": 1700000000000}


def create_session(client, **fields):
    response = client.post("/api/sessions", json=fields)
    assert response.status_code == 200
    return response.json()


def store_mandala(storage, url, session_id=None):
    return asyncio.run(storage.create_mandala(MandalaCreate(
        sessionId=session_id, imageUrl=url, prompt="p", brainwaveData=brainwave(),
    )))


class FailingAIService(LocalMandalaService):
    def __init__(self, error):
        super().__init__(sleep=no_sleep)
        self.error = error

    async def generate_mandala_prompt(self, options):
        raise self.error


class QuotaError(Exception):
    code = "insufficient_quota"


class TooManyRequests(Exception):
    status_code = 429


# --- health & middleware ---

def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_header(client):
    assert client.get("/api/health").headers["x-request-id"]
    echoed = client.get("/api/health", headers={"x-request-id": "abc-123"})
    assert echoed.headers["x-request-id"] == "abc-123"


# --- sessions ---

def test_create_and_get_session(client):
    session = create_session(client, attentionLevel=40)
    assert session["isActive"] is True
    assert session["attentionLevel"] == 40
    assert session["meditationLevel"] is None

    fetched = client.get(f"/api/sessions/{session['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == session


def test_unknown_session_is_404(client):
    response = client.get("/api/sessions/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_session_levels_are_validated(client):
    assert client.post("/api/sessions", json={"attentionLevel": 150}).status_code == 422
    assert client.post("/api/sessions", json={"meditationLevel": -1}).status_code == 422


def test_patch_session(client):
    session = create_session(client, attentionLevel=40)

    response = client.patch(f"/api/sessions/{session['id']}", json={"voiceTranscript": "hello"})
    assert response.status_code == 200
    body = response.json()
    assert body["voiceTranscript"] == "hello"
    assert body["attentionLevel"] == 40

    missing = client.patch("/api/sessions/nope", json={"voiceTranscript": "x"})
    assert missing.status_code == 404


def test_session_eeg_and_mandala_lists_start_empty(client):
    session = create_session(client)
    assert client.get(f"/api/sessions/{session['id']}/eeg").json() == []
    assert client.get(f"/api/sessions/{session['id']}/mandalas").json() == []


# --- mandala generation ---

def test_generate_mandala(client, storage):
    session = create_session(client)

    response = client.post("/api/mandalas/generate", json={
        "voiceTranscript": "I feel peaceful and full of love",
        "brainwaveData": brainwave(),
        "sessionId": session["id"],
        "style": "traditional",
        "colorPalette": "cool",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["imageUrl"].startswith("data:image/svg+xml;base64,")
    assert body["revisedPrompt"].startswith("Fallback mandala generated locally")
    assert "cool celestial palette" in body["generatedPrompt"]
    assert body["mandala"]["sessionId"] == session["id"]
    assert body["mandala"]["brainwaveData"]["attention"] == 65

    updated = client.get(f"/api/sessions/{session['id']}").json()
    assert updated["aiPrompt"] == body["generatedPrompt"]
    assert updated["mandalaUrl"] == body["imageUrl"]
    assert updated["voiceTranscript"] == "I feel peaceful and full of love"
    assert (updated["attentionLevel"], updated["meditationLevel"], updated["signalQuality"]) == (65, 45, 90)

    listed = client.get(f"/api/sessions/{session['id']}/mandalas").json()
    assert [m["id"] for m in listed] == [body["mandala"]["id"]]


def test_generate_unknown_session(client):
    response = client.post("/api/mandalas/generate", json={
        "voiceTranscript": "hello", "brainwaveData": brainwave(), "sessionId": "nope",
    })
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


@pytest.mark.parametrize("payload", [
    {"voiceTranscript": "", "brainwaveData": brainwave(), "sessionId": "x"},
    {"voiceTranscript": "hi", "brainwaveData": brainwave(attention=101), "sessionId": "x"},
    {"voiceTranscript": "hi", "brainwaveData": brainwave(), "sessionId": "x", "style": "baroque"},
    {"voiceTranscript": "hi", "sessionId": "x"},
])
def test_generate_validation(client, payload):
    assert client.post("/api/mandalas/generate", json=payload).status_code == 422


@pytest.mark.parametrize("error, status", [
    (QuotaError("quota"), 503),
    (TooManyRequests("slow down"), 429),
    (RuntimeError("network timeout talking to provider"), 502),
    (RuntimeError("kaboom"), 500),
])
def test_generate_error_mapping(make_client, error, status):
    client = make_client(FailingAIService(error))
    session = create_session(client)

    response = client.post("/api/mandalas/generate", json={
        "voiceTranscript": "hello", "brainwaveData": brainwave(), "sessionId": session["id"],
    })

    assert response.status_code == status
    body = response.json()
    assert body["fallbackAvailable"] is True
    assert body["details"] == str(error)
    assert body["error"]


# --- mandala reads ---

def test_get_mandala(client, storage):
    mandala = store_mandala(storage, "https://images.example/a.png")
    assert client.get(f"/api/mandalas/{mandala.id}").json()["imageUrl"] == "https://images.example/a.png"

    missing = client.get("/api/mandalas/nope")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Mandala not found"}


def test_recent_mandalas_limit(client, storage):
    ids = [store_mandala(storage, f"https://images.example/{i}.png").id for i in range(8)]

    default = client.get("/api/mandalas/recent").json()
    assert [m["id"] for m in default] == list(reversed(ids))[:6]
    assert len(client.get("/api/mandalas/recent?limit=2").json()) == 2
    assert len(client.get("/api/mandalas/recent?limit=abc").json()) == 6
    assert len(client.get("/api/mandalas/recent?limit=0").json()) == 6


def test_mandala_image_from_data_url(client, storage):
    svg = "<svg xmlns='http://www.w3.org/2000/svg'></svg>"
    url = "data:image/svg+xml;base64," + base64.b64encode(svg.encode()).decode()
    mandala = store_mandala(storage, url)

    response = client.get(f"/api/mandalas/{mandala.id}/image")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert response.headers["cache-control"] == "public, max-age=31536000"
    assert response.headers["etag"] == f'"{mandala.id}"'
    assert response.text == svg


def test_mandala_image_redirects_for_remote_urls(client, storage):
    mandala = store_mandala(storage, "https://images.example/remote.png")

    response = client.get(f"/api/mandalas/{mandala.id}/image", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "https://images.example/remote.png"


def test_mandala_image_unknown(client):
    assert client.get("/api/mandalas/nope/image").status_code == 404


# --- neurosky ---

def test_neurosky_status_initially_disconnected(client):
    body = client.get("/api/neurosky/status").json()
    assert body["connected"] is False
    assert body["currentData"] is None
    assert body["connectionInfo"]["maxReconnectAttempts"] == 5


def test_neurosky_check_when_connector_missing(client):
    body = client.get("/api/neurosky/check").json()
    assert body["available"] is False
    assert body["status"] == "not_running"
    assert set(body["instructions"]) == {"windows", "mac", "troubleshooting"}


def test_neurosky_check_when_connector_listening(client, neurosky):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(5)
        neurosky.config.port = listener.getsockname()[1]

        body = client.get("/api/neurosky/check").json()

    assert body["available"] is True
    assert body["status"] == "ready"


def test_neurosky_connect_needs_setup(client):
    response = client.post("/api/neurosky/connect")
    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["needsSetup"] is True


def test_neurosky_demo_enable_and_disable(client):
    enabled = client.post("/api/neurosky/demo/enable")
    assert enabled.status_code == 200
    assert len(enabled.json()["demoInfo"]["phases"]) == 4

    status = client.get("/api/neurosky/status").json()
    assert status["connected"] is True
    assert status["connectionInfo"]["isDemoMode"] is True

    disabled = client.post("/api/neurosky/demo/disable")
    assert disabled.json()["connectionInfo"]["isDemoMode"] is False
    assert client.get("/api/neurosky/status").json()["connected"] is False


def test_neurosky_disconnect(client):
    client.post("/api/neurosky/demo/enable")
    body = client.post("/api/neurosky/disconnect").json()
    assert body["success"] is True
    assert body["connectionInfo"]["isConnected"] is False


# --- ai ---

def test_ai_status(client):
    body = client.get("/api/ai/status?check=true").json()
    assert body == {"provider": "local", "configured": False, "healthy": True}


def test_sentiment_without_key_is_neutral(client):
    body = client.post("/api/ai/sentiment", json={"text": "I am so happy"}).json()
    assert body == {"rating": 3, "confidence": 0.5, "emotions": ["neutral"]}
    assert client.post("/api/ai/sentiment", json={"text": ""}).status_code == 422
