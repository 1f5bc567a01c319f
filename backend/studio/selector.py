import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Literal, Optional

from .settings import ModelMode, Resolution

OperationKind = Literal["ad_copy", "generate_3d", "upscale", "try_on"]


class Tier(str, Enum):
    HIGH_FIDELITY = "high_fidelity"
    FAST_DRAFT = "fast_draft"
    TEXT = "text"


# Model names can be overridden per deployment.
_DEFAULT_MODELS: Dict[Tier, str] = {
    Tier.HIGH_FIDELITY: "gemini-3-pro-image-preview",
    Tier.FAST_DRAFT: "gemini-2.5-flash-image",
    Tier.TEXT: "gemini-3-flash-preview",
}

_MODEL_ENV_VARS: Dict[Tier, str] = {
    Tier.HIGH_FIDELITY: "GEMINI_HIGH_FIDELITY_MODEL",
    Tier.FAST_DRAFT: "GEMINI_FAST_DRAFT_MODEL",
    Tier.TEXT: "GEMINI_TEXT_MODEL",
}


def model_for_tier(tier: Tier) -> str:
    return os.getenv(_MODEL_ENV_VARS[tier]) or _DEFAULT_MODELS[tier]


@dataclass(frozen=True)
class ResponseShape:
    """Response-shape parameters; None means "let the backend decide"."""

    aspect_ratio: Optional[str] = None
    image_size: Optional[str] = None
    response_mime_type: Optional[str] = None

    def image_config(self) -> Dict[str, str]:
        config: Dict[str, str] = {}
        if self.image_size:
            config["imageSize"] = self.image_size
        if self.aspect_ratio:
            config["aspectRatio"] = self.aspect_ratio
        return config


@dataclass(frozen=True)
class BackendSelection:
    tier: Tier
    shape: ResponseShape

    @property
    def model(self) -> str:
        return model_for_tier(self.tier)


def select_backend(
    kind: OperationKind,
    mode: ModelMode = "ghost",
    *,
    tier: Optional[Tier] = None,
    resolution: Optional[Resolution] = None,
) -> BackendSelection:
    """
    Pick the tier and response shape for an operation.

    ``tier`` forces a specific tier, which is how the upscale fallback asks for
    the fast-draft selection after the high-fidelity attempt fails.
    """
    if kind == "ad_copy":
        return BackendSelection(Tier.TEXT, ResponseShape(response_mime_type="application/json"))

    if kind == "generate_3d":
        chosen = tier or (Tier.HIGH_FIDELITY if mode == "human" else Tier.FAST_DRAFT)
        if chosen == Tier.HIGH_FIDELITY:
            return BackendSelection(chosen, ResponseShape(aspect_ratio="1:1", image_size="1K"))
        return BackendSelection(chosen, ResponseShape(aspect_ratio="1:1"))

    if kind == "upscale":
        chosen = tier or Tier.HIGH_FIDELITY
        if chosen == Tier.HIGH_FIDELITY:
            return BackendSelection(chosen, ResponseShape(aspect_ratio="1:1", image_size=resolution or "2K"))
        return BackendSelection(chosen, ResponseShape())

    if kind == "try_on":
        return BackendSelection(Tier.FAST_DRAFT, ResponseShape(aspect_ratio="3:4"))

    raise ValueError(f"Unknown operation kind: {kind}")
