"""
Per-user studio session: captured images, the current GenerationConfig and
one Idle/Loading/Success/Error slot per operation kind.
"""
import logging
import os
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import ErrorClass, OperationError
from .orchestrator import Orchestrator
from .settings import (
    GenerationConfig,
    Resolution,
    SourceImage,
    apply_config_patch,
    config_to_dict,
    with_background_image,
)

logger = logging.getLogger(__name__)

OPERATION_KINDS = ("ad_copy", "generate_3d", "upscale", "try_on")

DEFAULT_SESSION_TTL_S = float(os.getenv("SESSION_TTL_S", 60 * 60))
DEFAULT_MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", 500))
DEFAULT_SHARE_CAPTION = "Check out this design created in Garment Studio."


class OperationStatus(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class MissingImageError(ValueError):
    """A trigger was invoked before the image it needs was captured."""


@dataclass
class OperationSlot:
    status: OperationStatus = OperationStatus.IDLE
    error_class: Optional[ErrorClass] = None
    error_message: Optional[str] = None

    def start(self) -> None:
        self.status = OperationStatus.LOADING
        self.error_class = None
        self.error_message = None

    def succeed(self) -> None:
        self.status = OperationStatus.SUCCESS

    def fail(self, error: OperationError) -> None:
        self.status = OperationStatus.ERROR
        self.error_class = error.error_class
        self.error_message = error.message

    def reset(self) -> None:
        self.status = OperationStatus.IDLE
        self.error_class = None
        self.error_message = None


@dataclass(frozen=True)
class ShareHandoff:
    data: bytes
    mime_type: str
    caption: str


class StudioSession:
    def __init__(self, orchestrator: Orchestrator, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self.orchestrator = orchestrator
        self.config = GenerationConfig()
        self.original_image: Optional[SourceImage] = None
        self.current_image: Optional[SourceImage] = None
        self.ad_copy: Optional[Dict[str, Any]] = None
        self.try_on_result: Optional[SourceImage] = None
        self.error_message: Optional[str] = None
        self.slots: Dict[str, OperationSlot] = {kind: OperationSlot() for kind in OPERATION_KINDS}

    # -- inbound UI operations -------------------------------------------

    def upload_image(self, image: SourceImage) -> None:
        self.original_image = image
        self.current_image = image
        self.ad_copy = None
        self.error_message = None
        for kind in ("ad_copy", "generate_3d", "upscale"):
            self.slots[kind].reset()

    def set_config(self, patch: Optional[Dict[str, Any]]) -> GenerationConfig:
        self.config = apply_config_patch(self.config, patch)
        return self.config

    def set_background_image(self, image: SourceImage) -> None:
        self.config = with_background_image(self.config, image)

    def reset_to_original(self) -> None:
        self.current_image = self.original_image
        self.slots["generate_3d"].reset()
        self.slots["upscale"].reset()
        self.error_message = None

    def start_over(self) -> None:
        self.original_image = None
        self.current_image = None
        self.ad_copy = None
        self.try_on_result = None
        self.error_message = None
        for slot in self.slots.values():
            slot.reset()

    async def trigger_ad_copy(self) -> OperationSlot:
        image = self._require(self.current_image)
        slot = self.slots["ad_copy"]
        slot.start()
        try:
            self.ad_copy = await self.orchestrator.generate_ad_copy(image)
        except OperationError as e:
            return self._failed(slot, e, "ad_copy")
        slot.succeed()
        return slot

    async def trigger_generate(self) -> OperationSlot:
        image = self._require(self.original_image)
        slot = self.slots["generate_3d"]
        self.error_message = None
        slot.start()
        try:
            result = await self.orchestrator.generate_3d(image, self.config)
        except OperationError as e:
            return self._failed(slot, e, "generate_3d")
        self.current_image = result
        slot.succeed()
        self.slots["upscale"].reset()
        return slot

    async def trigger_upscale(self, resolution: Resolution) -> OperationSlot:
        image = self._require(self.current_image)
        slot = self.slots["upscale"]
        self.error_message = None
        slot.start()
        try:
            result = await self.orchestrator.upscale(image, resolution)
        except OperationError as e:
            return self._failed(slot, e, "upscale")
        self.current_image = result
        slot.succeed()
        return slot

    async def trigger_try_on(self, garment: SourceImage, model: SourceImage) -> OperationSlot:
        slot = self.slots["try_on"]
        self.try_on_result = None
        slot.start()
        try:
            # Try-on never touches the current studio image.
            self.try_on_result = await self.orchestrator.try_on(garment, model)
        except OperationError as e:
            return self._failed(slot, e, "try_on")
        slot.succeed()
        return slot

    # -- outbound handoff --------------------------------------------------

    def share_payload(self, voice: str = "witty") -> ShareHandoff:
        image = self._require(self.current_image)
        caption = DEFAULT_SHARE_CAPTION
        voice_copy = (self.ad_copy or {}).get(voice)
        if isinstance(voice_copy, dict):
            hashtags = " ".join(str(tag) for tag in voice_copy.get("hashtags") or [])
            caption = "\n\n".join(p for p in (voice_copy.get("headline"), voice_copy.get("body"), hashtags) if p)
        return ShareHandoff(data=image.data, mime_type=image.mime_type, caption=caption)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "operations": {
                kind: {
                    "status": slot.status.value,
                    "error_class": slot.error_class.value if slot.error_class else None,
                    "error_message": slot.error_message,
                }
                for kind, slot in self.slots.items()
            },
            "error_message": self.error_message,
            "config": config_to_dict(self.config),
            "has_original_image": self.original_image is not None,
            "has_current_image": self.current_image is not None,
            "has_try_on_result": self.try_on_result is not None,
            "ad_copy": self.ad_copy,
        }

    def _failed(self, slot: OperationSlot, error: OperationError, kind: str) -> OperationSlot:
        logger.warning(f"Session {self.session_id}: {kind} ended in error [{error.error_class.value}]")
        slot.fail(error)
        self.error_message = error.message
        return slot

    @staticmethod
    def _require(image: Optional[SourceImage]) -> SourceImage:
        if image is None:
            raise MissingImageError("Upload an image first")
        return image


class SessionStore:
    """
    In-memory sessions for a single process.

    Sessions idle for longer than ``ttl_seconds`` are dropped, and the least
    recently used session is evicted once ``max_sessions`` is reached.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        ttl_seconds: float = DEFAULT_SESSION_TTL_S,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.orchestrator = orchestrator
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        # session_id -> (session, last access); insertion order is access order.
        self._sessions: "OrderedDict[str, Tuple[StudioSession, float]]" = OrderedDict()

    def create(self) -> StudioSession:
        now = self._clock()
        self._prune(now)
        while len(self._sessions) >= self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(f"Evicted session {evicted} (store full)")
        session = StudioSession(self.orchestrator)
        self._sessions[session.session_id] = (session, now)
        logger.info(f"Created session {session.session_id}")
        return session

    def get(self, session_id: str) -> StudioSession:
        now = self._clock()
        self._prune(now)
        session, _ = self._sessions.pop(session_id)
        self._sessions[session_id] = (session, now)
        return session

    def _prune(self, now: float) -> None:
        expired = [sid for sid, (_, seen) in self._sessions.items() if now - seen > self.ttl_seconds]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)")

    def __len__(self) -> int:
        return len(self._sessions)
