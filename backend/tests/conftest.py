"""
Pytest configuration and shared fixtures
"""
import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys
import os

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before importing app
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-key")

from main import app
from studio.settings import SourceImage


class DummyGeminiResponse:
    def __init__(self, *, ok: bool = True, status_code: int = 200, text: str = "", data=None):
        self.is_success = ok
        self.status_code = status_code
        self.text = text
        self._data = data or {}

    def json(self):
        return self._data


def image_response(data: str = "AAAA", mime_type: str = "image/png", text: str = None) -> dict:
    parts = []
    if text:
        parts.append({"text": text})
    parts.append({"inlineData": {"data": data, "mimeType": mime_type}})
    return {"candidates": [{"finishReason": "STOP", "content": {"parts": parts}}]}


def text_response(text: str) -> dict:
    return {"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": text}]}}]}


class FakeCredentials:
    """Credential provider that records hook calls."""

    def __init__(self, has_key: bool = True, can_reacquire: bool = True):
        self.has_key = has_key
        self.can_reacquire = can_reacquire
        self.requests = 0

    def api_key(self):
        return "test-key" if self.has_key else None

    async def has_credential(self) -> bool:
        return self.has_key

    async def request_credential(self) -> None:
        from studio.errors import CredentialUnavailable

        self.requests += 1
        if not self.can_reacquire:
            raise CredentialUnavailable("no key selected")
        self.has_key = True


class ScriptedClient:
    """
    Stand-in for GeminiClient: each call pops the next scripted outcome.
    An outcome is either a response dict or an exception instance to raise.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate_content(self, model, payload):
        self.calls.append((model, payload))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def client():
    """Create a test client for the FastAPI app"""
    return TestClient(app)


@pytest.fixture
def sample_image_bytes():
    """Create sample image bytes for testing"""
    from PIL import Image as PILImage  # type: ignore
    import io

    img = PILImage.new("RGB", (512, 512), color=(200, 180, 150))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def garment_image():
    return SourceImage(data=b"garment-bytes", mime_type="image/jpeg")


@pytest.fixture
def background_image():
    return SourceImage(data=b"background-bytes", mime_type="image/png")
