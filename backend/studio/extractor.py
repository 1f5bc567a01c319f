import base64
import binascii
import json
import logging
import re
from typing import Any, Dict, List

from .errors import NoImageProduced
from .settings import SourceImage

logger = logging.getLogger(__name__)


def response_parts(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Ordered content parts of the first candidate (empty if there is none)."""
    candidates = (response or {}).get("candidates") or []
    if not candidates:
        return []
    content = (candidates[0] or {}).get("content") or {}
    return [p for p in (content.get("parts") or []) if isinstance(p, dict)]


def extract_image(response: Dict[str, Any]) -> SourceImage:
    """
    Return the first part carrying inline binary data.

    Text parts are skipped. Raises NoImageProduced if no part has image data.
    """
    parts = response_parts(response)
    for part in parts:
        # REST responses use camelCase; snake_case shows up from some proxies.
        inline_data = part.get("inlineData") or part.get("inline_data")
        if not isinstance(inline_data, dict) or not inline_data.get("data"):
            continue
        mime_type = inline_data.get("mimeType") or inline_data.get("mime_type") or "image/png"
        try:
            data = base64.b64decode(inline_data["data"], validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            logger.warning(f"Skipping undecodable inline part: {e}")
            continue
        return SourceImage(data=data, mime_type=mime_type)

    texts = [str(p.get("text"))[:100] for p in parts if p.get("text")]
    logger.warning(f"No image part in response ({len(parts)} parts). Text: {texts[:2]}")
    raise NoImageProduced("No image generated.")


def extract_text(response: Dict[str, Any]) -> str:
    for part in response_parts(response):
        if part.get("text"):
            return str(part["text"]).strip()
    return ""


def extract_json(response: Dict[str, Any]) -> Dict[str, Any]:
    text = extract_text(response)
    if not text:
        raise ValueError("No text returned from Gemini")
    # Strip code fences if the model ignores the JSON mime type.
    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", text).strip()
        text = re.sub(r"\s*```$", "", text).strip()
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("Gemini returned non-object JSON")
    return parsed
