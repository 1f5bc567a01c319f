from fastapi import FastAPI, UploadFile, File, HTTPException, Request, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel
from typing import Any, Dict, Literal, Optional
import base64
import logging
import os
import sys
import time
from pathlib import Path
from dotenv import load_dotenv
import uvicorn

# Add current directory to path to find the studio package
sys.path.insert(0, str(Path(__file__).parent))

from studio.credentials import EnvCredentialProvider
from studio.gemini import GeminiClient
from studio.imaging import InvalidImageError, prepare_source_image
from studio.orchestrator import Orchestrator
from studio.session import MissingImageError, OperationSlot, SessionStore, StudioSession
from studio.settings import ConfigError, SourceImage

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Garment Studio API")

# Configure CORS
# Format: comma-separated list, e.g., "https://studio.example.com,https://www.example.com"
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
if allowed_origins_str:
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
else:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# File upload security limits
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024))  # 10MB default
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/heic", "image/heif"}

credential_provider = EnvCredentialProvider()
store = SessionStore(Orchestrator(GeminiClient(credential_provider), credential_provider))

_rate_buckets: dict[str, tuple[int, float]] = {}


def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Simple best-effort in-memory rate limiter (per-instance).
    Returns True if allowed, False if rate-limited.
    """
    now = time.time()
    count, expires_at = _rate_buckets.get(key, (0, 0.0))
    if expires_at <= now:
        _rate_buckets[key] = (1, now + window_seconds)
        return True
    if count >= limit:
        return False
    _rate_buckets[key] = (count + 1, expires_at)
    return True


def get_client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip() or "unknown"
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def enforce_rate_limit(request: Request, operation: str) -> None:
    ip = get_client_ip(request)
    if not check_rate_limit(f"{operation}:{ip}", limit=10, window_seconds=60):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again shortly.")


def get_session(session_id: str) -> StudioSession:
    try:
        return store.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


async def read_upload(file: UploadFile, label: str) -> SourceImage:
    """Validate an uploaded image and normalize it into a SourceImage."""
    if not file.content_type or file.content_type.lower() not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"{label} validation failed: invalid file type. Allowed types: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}",
        )
    data = await file.read()
    if len(data) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"{label} too large. Maximum size: {MAX_FILE_SIZE / (1024*1024):.1f}MB",
        )
    try:
        return prepare_source_image(data)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=f"{label} validation failed: {e}")


def operation_response(session: StudioSession, slot: OperationSlot) -> Dict[str, Any]:
    return {
        "status": slot.status.value,
        "error_class": slot.error_class.value if slot.error_class else None,
        "error_message": slot.error_message,
        "session": session.snapshot(),
    }


class UpscaleRequest(BaseModel):
    resolution: Literal["2K", "4K"] = "2K"


@app.get("/")
async def root():
    return {"message": "Garment Studio API is running"}


@app.post("/api/sessions")
async def create_session(request: Request):
    enforce_rate_limit(request, "create_session")
    session = store.create()
    return {"session_id": session.session_id}


@app.get("/api/sessions/{session_id}")
async def read_session(session_id: str):
    return get_session(session_id).snapshot()


@app.post("/api/sessions/{session_id}/image")
async def upload_image(session_id: str, image: UploadFile = File(...)):
    session = get_session(session_id)
    source = await read_upload(image, "Image")
    session.upload_image(source)
    logger.info(f"Session {session_id}: image uploaded ({source.mime_type}, {len(source.data)} bytes)")
    return session.snapshot()


@app.post("/api/sessions/{session_id}/background-image")
async def upload_background_image(session_id: str, image: UploadFile = File(...)):
    session = get_session(session_id)
    session.set_background_image(await read_upload(image, "Background image"))
    return session.snapshot()


@app.patch("/api/sessions/{session_id}/config")
async def update_config(session_id: str, patch: Dict[str, Any] = Body(...)):
    session = get_session(session_id)
    try:
        session.set_config(patch)
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return session.snapshot()


@app.post("/api/sessions/{session_id}/ad-copy")
async def trigger_ad_copy(session_id: str, request: Request):
    session = get_session(session_id)
    enforce_rate_limit(request, "ad-copy")
    try:
        slot = await session.trigger_ad_copy()
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return operation_response(session, slot)


@app.post("/api/sessions/{session_id}/generate")
async def trigger_generate(session_id: str, request: Request):
    session = get_session(session_id)
    enforce_rate_limit(request, "generate")
    try:
        slot = await session.trigger_generate()
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return operation_response(session, slot)


@app.post("/api/sessions/{session_id}/upscale")
async def trigger_upscale(session_id: str, request: Request, body: Optional[UpscaleRequest] = None):
    session = get_session(session_id)
    enforce_rate_limit(request, "upscale")
    resolution = body.resolution if body else "2K"
    try:
        slot = await session.trigger_upscale(resolution)
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return operation_response(session, slot)


@app.post("/api/sessions/{session_id}/try-on")
async def trigger_try_on(
    session_id: str,
    request: Request,
    garment_image: UploadFile = File(...),
    model_image: UploadFile = File(...),
):
    session = get_session(session_id)
    enforce_rate_limit(request, "try-on")
    garment = await read_upload(garment_image, "Garment image")
    model = await read_upload(model_image, "Model image")
    slot = await session.trigger_try_on(garment, model)
    return operation_response(session, slot)


@app.post("/api/sessions/{session_id}/reset")
async def reset_to_original(session_id: str):
    session = get_session(session_id)
    session.reset_to_original()
    return session.snapshot()


@app.post("/api/sessions/{session_id}/start-over")
async def start_over(session_id: str):
    session = get_session(session_id)
    session.start_over()
    return session.snapshot()


@app.get("/api/sessions/{session_id}/image/{which}")
async def read_image(session_id: str, which: Literal["original", "current", "try-on"]):
    session = get_session(session_id)
    image = {
        "original": session.original_image,
        "current": session.current_image,
        "try-on": session.try_on_result,
    }[which]
    if image is None:
        raise HTTPException(status_code=404, detail="No image available")
    return Response(content=image.data, media_type=image.mime_type)


@app.get("/api/sessions/{session_id}/share")
async def share(session_id: str, voice: str = "witty"):
    session = get_session(session_id)
    try:
        handoff = session.share_payload(voice)
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "image_base64": base64.b64encode(handoff.data).decode("utf-8"),
        "mime_type": handoff.mime_type,
        "caption": handoff.caption,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        timeout_keep_alive=600,  # 10 minutes for long-running generation requests
    )
