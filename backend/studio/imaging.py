import io
import logging
import os
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .settings import SourceImage

logger = logging.getLogger(__name__)

# Inline request payloads are capped well below Gemini's 20MB request limit.
DEFAULT_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", 4 * 1024 * 1024))
DEFAULT_MAX_DIMENSION = 2048


class InvalidImageError(ValueError):
    """The uploaded bytes could not be decoded as an image."""


def _try_register_heif() -> bool:
    """
    Enable HEIC/HEIF decoding in Pillow via pillow-heif when it is installed.
    Without it, iPhone HEIC uploads are rejected as undecodable.
    """
    try:
        import pillow_heif  # type: ignore

        pillow_heif.register_heif_opener()  # type: ignore
        return True
    except ImportError:
        return False


_HEIF_REGISTERED: Optional[bool] = None


def ensure_heif_registered() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED is None:
        _HEIF_REGISTERED = _try_register_heif()
        if _HEIF_REGISTERED:
            logger.info("pillow-heif enabled: HEIC/HEIF decoding available")
        else:
            logger.info("pillow-heif not available: HEIC/HEIF decoding NOT available")
    return bool(_HEIF_REGISTERED)


def _encode(im: Image.Image, *, max_dimension: int, jpeg_quality: int) -> Tuple[bytes, str]:
    """Downscale to max_dimension (longest side) and encode: PNG if alpha, else JPEG."""
    w, h = im.size
    longest = max(w, h)
    if longest > max_dimension:
        scale = max_dimension / float(longest)
        im = im.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.Resampling.LANCZOS)

    has_alpha = im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in (im.info or {}))
    out = io.BytesIO()
    if has_alpha:
        # Cutouts keep transparency: the ghost render must not inherit a fake backdrop.
        im.convert("RGBA").save(out, format="PNG", optimize=True)
        return out.getvalue(), "image/png"
    im.convert("RGB").save(out, format="JPEG", quality=jpeg_quality, optimize=True, progressive=True)
    return out.getvalue(), "image/jpeg"


def prepare_source_image(
    image_bytes: bytes,
    *,
    max_bytes: int = DEFAULT_MAX_BYTES,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    min_dimension: int = 768,
    jpeg_quality: int = 90,
    min_jpeg_quality: int = 70,
) -> SourceImage:
    """
    Decode an upload, apply EXIF orientation and re-encode it under ``max_bytes``
    by progressively downscaling and lowering quality (best-effort).

    Returns the captured SourceImage. Raises InvalidImageError for undecodable input.
    """
    if not image_bytes:
        raise InvalidImageError("Empty image")
    if max_bytes <= 0:
        raise ValueError("max_bytes must be > 0")

    ensure_heif_registered()

    try:
        with Image.open(io.BytesIO(image_bytes)) as opened:
            im = ImageOps.exif_transpose(opened).copy()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Could not decode image: {e}") from e

    dim = max_dimension
    q = jpeg_quality
    data, mime = _encode(im, max_dimension=dim, jpeg_quality=q)
    for _ in range(8):
        if len(data) <= max_bytes:
            break
        # Tighten knobs
        dim = max(min_dimension, int(dim * 0.85))
        q = max(min_jpeg_quality, q - 6)
        data, mime = _encode(im, max_dimension=dim, jpeg_quality=q)
        if dim == min_dimension and q == min_jpeg_quality:
            break

    if len(data) > max_bytes:
        logger.warning(f"Image still {len(data)} bytes after normalization (budget {max_bytes})")
    return SourceImage(data=data, mime_type=mime)
