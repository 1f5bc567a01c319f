"""
Tests for the FastAPI session endpoints
"""
import base64

import pytest
from fastapi.testclient import TestClient

from conftest import DummyGeminiResponse, image_response, text_response


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


@pytest.fixture(autouse=True)
def clear_rate_limits():
    import main

    main._rate_buckets.clear()
    yield


@pytest.fixture
def session_id(client: TestClient) -> str:
    response = client.post("/api/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


@pytest.fixture
def uploaded_session(client: TestClient, session_id: str, sample_image_bytes) -> str:
    files = {"image": ("hoodie.png", sample_image_bytes, "image/png")}
    response = client.post(f"/api/sessions/{session_id}/image", files=files)
    assert response.status_code == 200
    return session_id


@pytest.fixture
def scripted_backend(monkeypatch):
    """Replaces the HTTP seam with queued responses; records every request payload."""
    from studio import gemini

    state = {"responses": [], "requests": []}

    async def fake_post(_client, *, url, headers, payload):
        state["requests"].append({"url": url, "payload": payload})
        return state["responses"].pop(0)

    monkeypatch.setattr(gemini, "_gemini_post_json", fake_post)
    return state


def test_root_endpoint(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert "Garment Studio API" in response.json()["message"]


def test_session_creation_is_rate_limited(client: TestClient):
    statuses = [client.post("/api/sessions").status_code for _ in range(11)]
    assert statuses[:10] == [200] * 10
    assert statuses[10] == 429


def test_unknown_session_is_404(client: TestClient):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.post("/api/sessions/nope/generate").status_code == 404


def test_new_session_snapshot(client: TestClient, session_id: str):
    data = client.get(f"/api/sessions/{session_id}").json()
    assert data["operations"]["generate_3d"]["status"] == "IDLE"
    assert data["config"]["garment"]["garment_type"] == "t-shirt"
    assert data["config"]["background"]["preset"] == "sunlit_travertine"
    assert data["has_current_image"] is False


def test_upload_rejects_wrong_type(client: TestClient, session_id: str):
    files = {"image": ("notes.txt", b"hello", "text/plain")}
    response = client.post(f"/api/sessions/{session_id}/image", files=files)
    assert response.status_code == 400


def test_upload_rejects_undecodable_image(client: TestClient, session_id: str):
    files = {"image": ("broken.png", b"not really a png", "image/png")}
    response = client.post(f"/api/sessions/{session_id}/image", files=files)
    assert response.status_code == 400


def test_generate_without_upload_is_400(client: TestClient, session_id: str):
    response = client.post(f"/api/sessions/{session_id}/generate")
    assert response.status_code == 400


def test_config_patch(client: TestClient, session_id: str):
    response = client.patch(
        f"/api/sessions/{session_id}/config",
        json={"garment": {"garment_type": "hoodie", "primary_fabric": "fleece"}, "rim_light": {"intensity": "none"}},
    )
    assert response.status_code == 200
    config = response.json()["config"]
    assert config["garment"]["garment_type"] == "hoodie"
    assert config["garment"]["fit_type"] == "oversized"
    assert config["rim_light"]["intensity"] == "none"


def test_config_patch_rejects_invalid_values(client: TestClient, session_id: str):
    response = client.patch(f"/api/sessions/{session_id}/config", json={"garment": {"primary_fabric": "silk"}})
    assert response.status_code == 422
    assert "silk" in response.json()["detail"]


def test_generate_success_updates_current_image(client: TestClient, uploaded_session: str, scripted_backend):
    scripted_backend["responses"].append(DummyGeminiResponse(data=image_response(b64(b"render"), "image/png")))
    response = client.post(f"/api/sessions/{uploaded_session}/generate")
    assert response.status_code == 200
    assert response.json()["status"] == "SUCCESS"
    image = client.get(f"/api/sessions/{uploaded_session}/image/current")
    assert image.status_code == 200
    assert image.content == b"render"
    assert image.headers["content-type"] == "image/png"
    assert len(scripted_backend["requests"]) == 1
    assert scripted_backend["requests"][0]["url"].endswith("gemini-2.5-flash-image:generateContent")


def test_generate_quota_is_reported_as_error_state(client: TestClient, uploaded_session: str, scripted_backend):
    scripted_backend["responses"].append(
        DummyGeminiResponse(ok=False, status_code=429, text="RESOURCE_EXHAUSTED")
    )
    response = client.post(f"/api/sessions/{uploaded_session}/generate")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ERROR"
    assert payload["error_class"] == "quota"
    assert payload["error_message"].startswith("Daily Studio quota exceeded")
    assert len(scripted_backend["requests"]) == 1


def test_upscale_falls_back_and_succeeds(client: TestClient, uploaded_session: str, scripted_backend):
    scripted_backend["responses"].extend(
        [
            DummyGeminiResponse(ok=False, status_code=404, text="model not found"),
            DummyGeminiResponse(data=image_response(b64(b"sharp"), "image/jpeg")),
        ]
    )
    response = client.post(f"/api/sessions/{uploaded_session}/upscale", json={"resolution": "4K"})
    assert response.status_code == 200
    assert response.json()["status"] == "SUCCESS"
    urls = [r["url"] for r in scripted_backend["requests"]]
    assert "gemini-3-pro-image-preview" in urls[0]
    assert "gemini-2.5-flash-image" in urls[1]
    assert client.get(f"/api/sessions/{uploaded_session}/image/current").content == b"sharp"


def test_upscale_rejects_unknown_resolution(client: TestClient, uploaded_session: str):
    response = client.post(f"/api/sessions/{uploaded_session}/upscale", json={"resolution": "8K"})
    assert response.status_code == 422


def test_reset_restores_original(client: TestClient, uploaded_session: str, scripted_backend, sample_image_bytes):
    scripted_backend["responses"].append(DummyGeminiResponse(data=image_response(b64(b"render"))))
    client.post(f"/api/sessions/{uploaded_session}/generate")
    original = client.get(f"/api/sessions/{uploaded_session}/image/original").content
    response = client.post(f"/api/sessions/{uploaded_session}/reset")
    assert response.json()["operations"]["generate_3d"]["status"] == "IDLE"
    assert client.get(f"/api/sessions/{uploaded_session}/image/current").content == original


def test_start_over_clears_images(client: TestClient, uploaded_session: str):
    response = client.post(f"/api/sessions/{uploaded_session}/start-over")
    assert response.json()["has_original_image"] is False
    assert client.get(f"/api/sessions/{uploaded_session}/image/current").status_code == 404


def test_try_on_endpoint(client: TestClient, session_id: str, scripted_backend, sample_image_bytes):
    scripted_backend["responses"].append(DummyGeminiResponse(data=image_response(b64(b"fitted"))))
    files = {
        "garment_image": ("garment.png", sample_image_bytes, "image/png"),
        "model_image": ("person.png", sample_image_bytes, "image/png"),
    }
    response = client.post(f"/api/sessions/{session_id}/try-on", files=files)
    assert response.status_code == 200
    assert response.json()["status"] == "SUCCESS"
    assert client.get(f"/api/sessions/{session_id}/image/try-on").content == b"fitted"
    parts = scripted_backend["requests"][0]["payload"]["contents"][0]["parts"]
    assert [next(iter(p)) for p in parts] == ["inline_data", "inline_data", "text"]


def test_ad_copy_and_share(client: TestClient, uploaded_session: str, scripted_backend):
    copy = '{"witty": {"headline": "No cap", "body": "Fit check.", "hashtags": ["#ootd"]}}'
    scripted_backend["responses"].append(DummyGeminiResponse(data=text_response(copy)))
    response = client.post(f"/api/sessions/{uploaded_session}/ad-copy")
    assert response.json()["status"] == "SUCCESS"
    share = client.get(f"/api/sessions/{uploaded_session}/share", params={"voice": "witty"}).json()
    assert share["caption"] == "No cap\n\nFit check.\n\n#ootd"
    assert share["mime_type"] == "image/jpeg"
    assert base64.b64decode(share["image_base64"])


def test_background_image_upload_is_cached(client: TestClient, session_id: str, sample_image_bytes):
    files = {"image": ("plate.png", sample_image_bytes, "image/png")}
    response = client.post(f"/api/sessions/{session_id}/background-image", files=files)
    assert response.status_code == 200
    background = response.json()["config"]["background"]
    assert background["has_custom_image"] is True
    assert background["mode"] == "preset"
