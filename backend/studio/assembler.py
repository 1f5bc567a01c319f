import base64
from typing import Any, Dict, List, Optional

from .selector import ResponseShape
from .settings import SourceImage


def image_part(image: SourceImage) -> Dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": image.mime_type,
            "data": base64.b64encode(image.data).decode("utf-8"),
        }
    }


def assemble_request(
    primary: SourceImage,
    secondary: Optional[SourceImage],
    instructions: str,
    shape: ResponseShape,
    *,
    system_instruction: Optional[str] = None,
    response_schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a Gemini ``generateContent`` request body.

    Part order matters to the backend: primary image, then the optional
    secondary image (background plate or try-on model), then the text.
    """
    parts: List[Dict[str, Any]] = [image_part(primary)]
    if secondary is not None:
        parts.append(image_part(secondary))
    parts.append({"text": instructions})

    generation_config: Dict[str, Any] = {}
    if shape.response_mime_type:
        generation_config["responseMimeType"] = shape.response_mime_type
        if response_schema:
            generation_config["responseSchema"] = response_schema
    else:
        generation_config["responseModalities"] = ["TEXT", "IMAGE"]
    image_config = shape.image_config()
    if image_config:
        generation_config["imageConfig"] = image_config

    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": generation_config,
    }
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    return payload
