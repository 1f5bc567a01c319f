import base64

from studio.assembler import assemble_request
from studio.selector import ResponseShape, select_backend
from studio.settings import SourceImage


def test_primary_then_text_without_secondary(garment_image):
    payload = assemble_request(garment_image, None, "render it", ResponseShape(aspect_ratio="1:1"))
    parts = payload["contents"][0]["parts"]
    assert len(parts) == 2
    assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"garment-bytes"
    assert parts[0]["inline_data"]["mime_type"] == "image/jpeg"
    assert parts[1] == {"text": "render it"}


def test_secondary_image_sits_between_primary_and_text(garment_image, background_image):
    payload = assemble_request(garment_image, background_image, "compose", ResponseShape())
    parts = payload["contents"][0]["parts"]
    assert [next(iter(p)) for p in parts] == ["inline_data", "inline_data", "text"]
    assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"garment-bytes"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"background-bytes"
    assert parts[1]["inline_data"]["mime_type"] == "image/png"
    assert parts[2]["text"] == "compose"


def test_image_request_asks_for_image_modality_and_shape(garment_image):
    shape = select_backend("upscale", resolution="4K").shape
    payload = assemble_request(garment_image, None, "upscale", shape)
    config = payload["generationConfig"]
    assert config["responseModalities"] == ["TEXT", "IMAGE"]
    assert config["imageConfig"] == {"imageSize": "4K", "aspectRatio": "1:1"}
    assert "systemInstruction" not in payload


def test_json_request_carries_schema_and_system_instruction(garment_image):
    schema = {"type": "OBJECT"}
    payload = assemble_request(
        garment_image,
        None,
        "write copy",
        select_backend("ad_copy").shape,
        system_instruction="be witty",
        response_schema=schema,
    )
    config = payload["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == schema
    assert "responseModalities" not in config
    assert payload["systemInstruction"] == {"parts": [{"text": "be witty"}]}


def test_try_on_order_is_garment_then_model():
    garment = SourceImage(b"garment", "image/jpeg")
    model = SourceImage(b"person", "image/jpeg")
    parts = assemble_request(garment, model, "try on", ResponseShape(aspect_ratio="3:4"))["contents"][0]["parts"]
    assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"garment"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"person"
