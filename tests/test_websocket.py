def receive_until(ws, wanted, limit=50):
    seen = []
    for _ in range(limit):
        message = ws.receive_json()
        seen.append(message["type"])
        if message["type"] == wanted:
            return message, seen
    raise AssertionError(f"{wanted} not received, got {seen}")


def test_connection_status_on_connect(client):
    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()
    assert message == {"type": "connection_status", "connected": False, "currentData": None}


def test_connect_command_failure_replies_error(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "connect_neurosky"})
        message, _ = receive_until(ws, "error")
    assert message["message"] == "Failed to connect to NeuroSky device"


def test_demo_commands_stream_eeg_data(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("this is not json")
        ws.send_json({"type": "enable_demo"})

        enabled, _ = receive_until(ws, "demo_enabled")
        assert "Demo mode enabled" in enabled["message"]

        eeg, _ = receive_until(ws, "eeg_data")
        data = eeg["data"]
        assert 0 <= data["attention"] <= 100
        assert 30 <= data["signalQuality"] <= 100

        ws.send_json({"type": "disable_demo"})
        receive_until(ws, "demo_disabled")


def test_demo_data_is_stored_for_active_sessions(client):
    session = client.post("/api/sessions", json={}).json()

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "enable_demo"})
        receive_until(ws, "eeg_data")
        receive_until(ws, "eeg_data")
        ws.send_json({"type": "disconnect_neurosky"})
        receive_until(ws, "neurosky_disconnected")

    samples = client.get(f"/api/sessions/{session['id']}/eeg").json()
    assert samples
    assert samples[0]["sessionId"] == session["id"]
    assert samples[0]["rawData"]["attention"] == samples[0]["attention"]


def test_generated_mandala_is_broadcast(client):
    session = client.post("/api/sessions", json={}).json()

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        response = client.post("/api/mandalas/generate", json={
            "voiceTranscript": "gratitude",
            "brainwaveData": {"attention": 50, "meditation": 50, "signalQuality": 90, "timestamp": 0},
            "sessionId": session["id"],
        })
        message, _ = receive_until(ws, "mandala_generated")

    assert message["mandala"]["id"] == response.json()["mandala"]["id"]
    assert message["generatedMandala"]["imageUrl"] == response.json()["imageUrl"]


def test_binary_frames_are_ignored(client):
    manager = client.app.state.manager

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_bytes(b"\x00\x01")
        ws.send_json({"type": "enable_demo"})
        receive_until(ws, "demo_enabled")
        assert manager.count == 1
        ws.send_json({"type": "disable_demo"})
        receive_until(ws, "demo_disabled")

    assert manager.count == 0


def test_closed_client_leaves_the_manager(client):
    manager = client.app.state.manager

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        assert manager.count == 1

    assert manager.count == 0
