import logging
import os
from typing import Any, Dict, Optional

import httpx

from .credentials import CredentialProvider, EnvCredentialProvider
from .errors import BackendCallError, CredentialUnavailable

logger = logging.getLogger(__name__)

# This module uses direct REST API calls to the Gemini API with API key authentication.
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


async def _gemini_post_json(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
) -> httpx.Response:
    """
    Thin wrapper for Gemini HTTP calls to make retry logic testable (can be monkeypatched).
    """
    return await client.post(url, headers=headers, json=payload)


def _error_text(response: httpx.Response) -> str:
    """Prefer Gemini's structured ``status: message`` error, else the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        status = error.get("status")
        return f"{status}: {error['message']}" if status else str(error["message"])
    return response.text


class GeminiClient:
    """
    One call-and-response contract against ``models/{model}:generateContent``.

    Returns the decoded JSON body, or raises BackendCallError carrying the
    status code and response text for classification.
    """

    def __init__(
        self,
        credentials: Optional[CredentialProvider] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.credentials = credentials or EnvCredentialProvider()
        self.base_url = (base_url or os.getenv("GEMINI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.getenv("GEMINI_TIMEOUT_S", "300"))

    async def generate_content(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        api_key = self.credentials.api_key()
        if not api_key:
            raise CredentialUnavailable("GEMINI_API_KEY or GOOGLE_API_KEY environment variable is required")

        endpoint = f"{self.base_url}/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await _gemini_post_json(client, url=endpoint, headers=headers, payload=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling Gemini model {model}: {e}")
            raise BackendCallError(None, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error calling Gemini model {model}: {type(e).__name__}: {e}")
            raise BackendCallError(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            error_text = _error_text(response)
            logger.error(f"Gemini API error ({model}): {response.status_code} - {error_text[:500]}")
            raise BackendCallError(response.status_code, error_text)

        data = response.json()
        if not isinstance(data, dict):
            raise BackendCallError(response.status_code, "Gemini returned a non-object response")
        return data
