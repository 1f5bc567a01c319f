import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional, Union, get_args

logger = logging.getLogger(__name__)

Intensity = Literal["soft", "medium", "hard"]
LightColor = Literal["neutral", "warm", "cool"]
LightDirection = Literal["front", "left", "right", "top"]
RimIntensity = Literal["none", "subtle", "strong"]
RimColor = Literal["white", "lime", "cyan", "magenta", "orange"]
RimDirection = Literal["left", "right", "top"]

GarmentType = Literal["t-shirt", "hoodie", "sweatshirt", "jacket", "pants", "shorts"]
FitType = Literal["regular", "oversized", "slim"]
FabricType = Literal["cotton", "fleece", "denim", "nylon", "leather"]
SecondaryFabric = Literal["cotton", "fleece", "denim", "nylon", "leather", "none"]

PresetName = Literal["minimal_luxury", "sunlit_travertine", "urban_concrete", "moody_editorial"]
BackgroundMode = Literal["preset", "custom_color", "custom_image"]

ModelMode = Literal["ghost", "human"]
ModelGender = Literal["female", "male", "neutral"]

TaskKind = Literal["ghost", "human"]
Resolution = Literal["2K", "4K"]


@dataclass(frozen=True)
class MainLight:
    intensity: Intensity = "medium"
    color: LightColor = "neutral"
    direction: LightDirection = "left"


@dataclass(frozen=True)
class RimLight:
    intensity: RimIntensity = "subtle"
    color: RimColor = "white"
    direction: RimDirection = "right"


@dataclass(frozen=True)
class LightingSettings:
    main: MainLight = field(default_factory=MainLight)
    rim: RimLight = field(default_factory=RimLight)


@dataclass(frozen=True)
class GarmentSpec:
    garment_type: GarmentType = "t-shirt"
    fit_type: FitType = "oversized"
    primary_fabric: FabricType = "cotton"
    secondary_fabric: SecondaryFabric = "none"


@dataclass(frozen=True)
class SourceImage:
    """Captured image bytes. Never mutated; replaced wholesale."""

    data: bytes
    mime_type: str


# BackgroundSpec is a closed union: exactly one of these three is active.
@dataclass(frozen=True)
class Preset:
    name: PresetName


@dataclass(frozen=True)
class CustomColor:
    hex_value: str


@dataclass(frozen=True)
class CustomImage:
    image: SourceImage


BackgroundSpec = Union[Preset, CustomColor, CustomImage]


@dataclass(frozen=True)
class BackgroundSettings:
    """
    The user's background selection.

    Switching ``mode`` keeps the data captured for the other modes, so going
    back to a previous mode restores it without a new upload or color pick.
    """

    mode: BackgroundMode = "preset"
    preset: PresetName = "sunlit_travertine"
    custom_color: str = "#E5E5E5"
    custom_image: Optional[SourceImage] = None

    def resolve(self) -> BackgroundSpec:
        if self.mode == "custom_color":
            return CustomColor(self.custom_color)
        if self.mode == "custom_image" and self.custom_image is not None:
            return CustomImage(self.custom_image)
        return Preset(self.preset)


@dataclass(frozen=True)
class PresentationSpec:
    mode: ModelMode = "ghost"
    gender: ModelGender = "female"


@dataclass(frozen=True)
class GenerationConfig:
    lighting: LightingSettings = field(default_factory=LightingSettings)
    garment: GarmentSpec = field(default_factory=GarmentSpec)
    background: BackgroundSettings = field(default_factory=BackgroundSettings)
    presentation: PresentationSpec = field(default_factory=PresentationSpec)


# Lighting a presentation-mode switch resets to. Side light reveals texture on a
# model; the mannequin gets even studio light.
MODE_LIGHTING: Dict[str, LightingSettings] = {
    "human": LightingSettings(main=MainLight("hard", "warm", "left"), rim=RimLight("subtle", "white", "right")),
    "ghost": LightingSettings(main=MainLight("medium", "neutral", "left"), rim=RimLight("subtle", "white", "right")),
}


class ConfigError(ValueError):
    """Raised when a config patch names an unknown field or an invalid value."""


# Field name -> allowed values, per config section.
_SCHEMA: Dict[str, Dict[str, Any]] = {
    "main_light": {
        "intensity": get_args(Intensity),
        "color": get_args(LightColor),
        "direction": get_args(LightDirection),
    },
    "rim_light": {
        "intensity": get_args(RimIntensity),
        "color": get_args(RimColor),
        "direction": get_args(RimDirection),
    },
    "garment": {
        "garment_type": get_args(GarmentType),
        "fit_type": get_args(FitType),
        "primary_fabric": get_args(FabricType),
        "secondary_fabric": get_args(SecondaryFabric),
    },
    "background": {
        "mode": get_args(BackgroundMode),
        "preset": get_args(PresetName),
        "custom_color": None,
    },
    "presentation": {
        "mode": get_args(ModelMode),
        "gender": get_args(ModelGender),
    },
}


def _is_hex_color(value: Any) -> bool:
    if not isinstance(value, str) or not value.startswith("#"):
        return False
    digits = value[1:]
    return len(digits) in (3, 6) and all(c in "0123456789abcdefABCDEF" for c in digits)


def _validated(section: str, values: Dict[str, Any]) -> Dict[str, Any]:
    allowed = _SCHEMA[section]
    out: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in allowed:
            raise ConfigError(f"Unknown field '{section}.{key}'")
        choices = allowed[key]
        if choices is None:
            if not _is_hex_color(value):
                raise ConfigError(f"Invalid hex color for '{section}.{key}': {value!r}")
        elif value not in choices:
            raise ConfigError(f"Invalid value for '{section}.{key}': {value!r}. Allowed: {', '.join(choices)}")
        out[key] = value
    return out


def apply_config_patch(config: GenerationConfig, patch: Optional[Dict[str, Any]]) -> GenerationConfig:
    """
    Return a new GenerationConfig with a partial patch applied.

    The patch is a nested dict keyed by section:
      {"main_light": {...}, "rim_light": {...}, "garment": {...},
       "background": {...}, "presentation": {...}}

    Captured background images are not part of the patch; they are set with
    ``with_background_image``.

    Switching ``presentation.mode`` resets lighting to that mode's preset
    (MODE_LIGHTING); light sections in the same patch are applied on top.
    """
    if not patch:
        return config
    unknown = set(patch) - set(_SCHEMA)
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    patch = copy.deepcopy(patch)
    for section, values in patch.items():
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section}' must be an object")

    presentation = config.presentation
    if "presentation" in patch:
        presentation = replace(presentation, **_validated("presentation", patch["presentation"]))

    lighting = config.lighting
    if presentation.mode != config.presentation.mode:
        lighting = MODE_LIGHTING[presentation.mode]
    if "main_light" in patch:
        lighting = replace(lighting, main=replace(lighting.main, **_validated("main_light", patch["main_light"])))
    if "rim_light" in patch:
        lighting = replace(lighting, rim=replace(lighting.rim, **_validated("rim_light", patch["rim_light"])))

    garment = config.garment
    if "garment" in patch:
        garment = replace(garment, **_validated("garment", patch["garment"]))

    background = config.background
    if "background" in patch:
        background = replace(background, **_validated("background", patch["background"]))

    updated = GenerationConfig(
        lighting=lighting,
        garment=garment,
        background=background,
        presentation=presentation,
    )
    logger.debug(f"Config patched: sections={sorted(patch.keys())}")
    return updated


def with_background_image(config: GenerationConfig, image: SourceImage) -> GenerationConfig:
    """Capture a custom background image without changing the active mode."""
    return replace(config, background=replace(config.background, custom_image=image))


def config_to_dict(config: GenerationConfig) -> Dict[str, Any]:
    bg = config.background
    return {
        "main_light": {
            "intensity": config.lighting.main.intensity,
            "color": config.lighting.main.color,
            "direction": config.lighting.main.direction,
        },
        "rim_light": {
            "intensity": config.lighting.rim.intensity,
            "color": config.lighting.rim.color,
            "direction": config.lighting.rim.direction,
        },
        "garment": {
            "garment_type": config.garment.garment_type,
            "fit_type": config.garment.fit_type,
            "primary_fabric": config.garment.primary_fabric,
            "secondary_fabric": config.garment.secondary_fabric,
        },
        "background": {
            "mode": bg.mode,
            "preset": bg.preset,
            "custom_color": bg.custom_color,
            "has_custom_image": bg.custom_image is not None,
        },
        "presentation": {
            "mode": config.presentation.mode,
            "gender": config.presentation.gender,
        },
    }
