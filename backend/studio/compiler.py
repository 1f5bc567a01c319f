"""
Configuration compiler: turns a GenerationConfig into the instruction text
sent to the image backend.

Everything here is pure string building. Every combination of settings
compiles; there are no invalid configurations.
"""
from dataclasses import dataclass
from typing import Dict

from .settings import (
    BackgroundSpec,
    CustomColor,
    CustomImage,
    GenerationConfig,
    LightingSettings,
    Preset,
    Resolution,
    TaskKind,
)

HUMAN_LIGHT_DIRECTIONS: Dict[str, str] = {
    "front": "Butterfly Lighting",
    "left": "Rembrandt Lighting (Left)",
    "right": "Rembrandt Lighting (Right)",
    "top": "Dramatic Top-Down",
}

PRESET_SCENES: Dict[str, str] = {
    "minimal_luxury": "Scene: High-end grey plaster cyclorama wall. Soft, diffused ambient fill.",
    "sunlit_travertine": "Scene: Warm beige stone wall. Dappled sunlight (leaf shadows) projecting onto the background.",
    "urban_concrete": "Scene: Raw industrial concrete wall. Cool, neutral lighting.",
    "moody_editorial": "Scene: Dark charcoal void. High contrast dramatic lighting.",
}

# Weight and density only. No colors: the garment's color always comes from the input image.
FABRIC_PHYSICS: Dict[str, str] = {
    "cotton": (
        "Fabric: Heavyweight Cotton Jersey (300 GSM). Physics: Medium drag. Matte finish. "
        "Soft, frequent, rounded folds. Reacts heavily to gravity. High surface detail."
    ),
    "fleece": (
        "Fabric: Heavy Cotton French Terry (500 GSM). Physics: High structural stiffness. "
        "Resistant to micro-wrinkles. Forms large, tubular, compression-based folds. "
        "Soft-body collision. Fuzzy surface texture."
    ),
    "denim": (
        "Fabric: Heavyweight Denim (14oz). Physics: High rigidity. Resists bending. "
        "Forms sharp, angular 'honeycomb' creases at joints. Stiff stacking. Visible weave texture."
    ),
    "nylon": (
        "Fabric: Ripstop Nylon Shell. Physics: Zero-stretch. Paper-like crumpling behavior. "
        "High specular reflection. Crisp, noisy edges on folds. Low friction."
    ),
    "leather": (
        "Fabric: Full-grain Leather. Physics: Very high bending stiffness. Heavy weight simulation. "
        "Gravity pulls it straight down. Folds are thick and rounded, resembling sculpted clay. "
        "Subsurface scattering."
    ),
}

HEAVY_FABRICS = ("fleece", "leather")

GARMENT_STRUCTURE: Dict[str, str] = {
    "t-shirt": (
        "Structure: Drop-shoulder boxy fit. Gravity pulls fabric vertical from the shoulder line. "
        "Slight bunching at the waist."
    ),
    "hoodie": "Structure: Volumetric hood (filled with air). Kangaroo pocket volume. Thick elastic cuffs.",
    "sweatshirt": (
        "Structure: Balloon fit. Tight elastic cuffs create 'blousing' effect on sleeves. "
        "Waistband creates a fold-over muffin top effect."
    ),
    "jacket": (
        "Structure: Puffer/Bomber insulation. Simulate internal air pressure. "
        "The surface is tensioned outwards. Seams create deep valleys."
    ),
    "pants": (
        "Structure: Wide-leg cut. Fabric cascades from hip to floor. "
        "'Stacking' physics at the ankles where fabric accumulates."
    ),
    "shorts": "Structure: A-frame wide cut. Legs are rigid tubes. Hem creates a distinct shadow line on the leg.",
}

FIT_PHYSICS: Dict[str, str] = {
    "regular": "Fit Physics: Standard drape. Fabric touches body at shoulders, chest, and waist. Moderate folding.",
    "oversized": (
        "Fit Physics: EXCESS FABRIC SIMULATION. Shoulders drop significantly. "
        "Deep vertical folds due to extra material. Fabric hangs loose from the body (air gap)."
    ),
    "slim": (
        "Fit Physics: HIGH TENSION. Fabric stretches over the form. "
        "Horizontal tension lines (whiskering) at stress points. Minimal loose folding."
    ),
}

GHOST_TRANSFORMATION = """TASK: 3D GHOST MANNEQUIN RENDER
1. **Transformation**: Take the flat input image and INFLATE it into a 3D volumetric object.
2. **Ghost Effect**: The garment should look like it is being worn by an invisible person.
   - **Neck**: Show the interior back of the neck label (depth).
   - **Waist/Sleeves**: Show the circular openings with thickness.
3. **Volume**: Add depth shading. The chest should protrude, the sides should recede. It MUST NOT look flat.
4. **Texture Mapping**: Warp the texture and graphics from the flat input onto this new 3D form."""

HUMAN_TRANSFORMATION = """TASK: VIRTUAL PHOTOSHOOT (ON MODEL)
1. **Analysis**: Look at the input clothing image. Understand the pattern, logo, and cut.
2. **Generation**: Generate a photorealistic image of a {gender} model wearing this EXACT item.
3. **Fitting**: The clothing must wrap around the human body realistically. Folds should react to the body underneath.
4. **Identity**: You must preserve the logo/graphic design from the input image, but warp it to match the fabric folds."""

COMPOSITION_DIRECTIVE = """COMPOSITION & CINEMATOGRAPHY (DEFAULT: PRODUCT FOCUS):
- **Lens**: 85mm Prime Lens (Virtual equivalent). Best for product isolation without distortion.
- **Aperture**: f/4.0 to f/5.6. Sharp focus on the entire garment structure.
- **Focus**: SHARP FOCUS on the textile. No blur on the product itself.
- **Framing**: Center the garment. Maintain the aspect ratio of the garment's silhouette.
- **Camera Angle**: Eye-level (0 degrees)."""

EXTRACTION_DIRECTIVE = """INTELLIGENT EXTRACTION & CLEANUP (CRITICAL STEP):
- **Background Removal**: The input image may contain a bed, floor, messy room, or hanger. You MUST mathematically separate the garment from this noise.
- **Reconstruction**: If the input garment is wrinkled or folded on a surface, you must 'iron' it out in 3D to show the full fit, while maintaining the original cut dimensions.
- **Segmentation**: Ignore all non-garment pixels."""

PRESERVATION_DIRECTIVE = """STRICT VISUAL PRESERVATION (COLOR & SIZE):
- **Color Cloning**: You MUST extract the exact average RGB color from the garment in Input Image 1.
- **Override Material Defaults**: Even if the material is 'Denim', if the input image is Beige, the output MUST be Beige. Do NOT generate blue denim unless the input is blue.
- **Scale & Proportion**: Measure the relative width of the garment legs/sleeves in the input. Replicate these exact proportions in the 3D mesh. (e.g., If input is wide-leg, output is wide-leg). Do not slim down the garment."""

CRITICAL_DIRECTIVE = """CRITICAL INSTRUCTION:
- Do NOT simply output the input image. You must generate a NEW image.
- The output must have 3D form, depth, and perspective.
- Ensure the brand graphics/logos are preserved but realistically distorted by the fabric folds.
- Focus strictly on the clothing. The clothing is the hero.
- Resolution: 4K."""


@dataclass(frozen=True)
class CompiledInstructions:
    """The rendered blocks for one 3D generation call."""

    environment: str
    shadow: str
    main_light: str
    rim_light: str
    material: str
    weight: str
    structure: str
    fit: str
    core_transformation: str
    composition: str = COMPOSITION_DIRECTIVE

    @property
    def background_block(self) -> str:
        return f"{self.environment}\n{self.shadow}"

    @property
    def lighting_block(self) -> str:
        lines = ["LIGHTING SETUP:", f"- Main Light: {self.main_light}"]
        if self.rim_light:
            lines.append(f"- Rim Light: {self.rim_light}")
        lines.append(f"- Shadow Physics: {self.shadow}")
        return "\n".join(lines)

    @property
    def text(self) -> str:
        return "\n\n".join(
            [
                "COMMAND: CREATE A 3D PRODUCT RENDER FROM REFERENCE.",
                "INPUT: A 2D reference image of a garment (Input Image 1).\n"
                "OUTPUT: A high-fidelity 3D commercial product shot.",
                EXTRACTION_DIRECTIVE,
                PRESERVATION_DIRECTIVE,
                self.core_transformation,
                "PHYSICS ENGINE SIMULATION:\n"
                "- **Gravity**: Simulate standard earth gravity (-9.8m/s).\n"
                "- **Self-Collision**: The fabric must not clip through itself.\n"
                f"- **Weight**: {self.weight}.",
                "GARMENT SPECIFICATIONS (Use as Physics Guide, Override with Image Visuals):\n"
                f"- {self.structure}\n"
                f"- {self.fit}\n"
                f"- {self.material}",
                self.environment,
                self.lighting_block,
                self.composition,
                CRITICAL_DIRECTIVE,
            ]
        )


def shadow_hardness(lighting: LightingSettings) -> str:
    return "Contact Hard" if lighting.main.intensity == "hard" else "Diffused Soft"


def compile_background(background: BackgroundSpec, lighting: LightingSettings):
    """Return (environment, shadow) for exactly one background variant."""
    hardness = shadow_hardness(lighting)
    if isinstance(background, Preset):
        environment = f"ENVIRONMENT: {PRESET_SCENES[background.name]}"
        shadow = f"Cast a {hardness} drop shadow based on the light direction."
    elif isinstance(background, CustomColor):
        color = background.hex_value
        environment = (
            "ENVIRONMENT:\n"
            f"- Background Color: {color}.\n"
            "- Floor: Seamless paper/infinity curve matching the background color exactly.\n"
            f"- Lighting Interaction: The floor must bounce {color} tinted light onto the bottom of the garment "
            "(Global Illumination)."
        )
        shadow = (
            f"Cast a {hardness} shadow onto the floor color. "
            f"The shadow must be a multiply blend (darker version of {color}), NOT grey."
        )
    elif isinstance(background, CustomImage):
        environment = (
            "ENVIRONMENT:\n"
            "- Context: Place the 3D rendered subject into the provided Background Image (Image 2).\n"
            "- Integration: Match the camera angle, perspective, and lens distortion of the background image.\n"
            "- Lighting Match: Estimate the light source in the background image and match it on the subject."
        )
        shadow = (
            "Cast realistic shadows onto the ground plane of the background image. "
            "Match the shadow direction and color of existing objects in the scene."
        )
    else:
        raise TypeError(f"Unsupported background variant: {type(background).__name__}")
    return environment, shadow


def compile_main_light(lighting: LightingSettings, task_kind: TaskKind) -> str:
    main = lighting.main
    if task_kind == "human":
        return (
            f"{main.intensity} intensity {main.color} tinted {HUMAN_LIGHT_DIRECTIONS[main.direction]}. "
            "High-CRI commercial lighting."
        )
    return f"{main.intensity} intensity softbox strobe from the {main.direction}. Evenly diffused for product clarity."


def compile_rim_light(lighting: LightingSettings) -> str:
    rim = lighting.rim
    if rim.intensity == "none":
        return ""
    return (
        f"Add a {rim.intensity}, {rim.color} rim light/kicker from the {rim.direction} "
        "to separate subject from background."
    )


def compile_material(primary: str, secondary: str) -> str:
    material = FABRIC_PHYSICS[primary]
    if secondary != "none" and secondary != primary:
        material += f"\nBlend in texture characteristics of {secondary}."
    return material


def weight_hint(primary: str) -> str:
    return "Heavy weight simulation" if primary in HEAVY_FABRICS else "Medium weight simulation"


def compile_core_transformation(task_kind: TaskKind, gender: str) -> str:
    if task_kind == "human":
        return HUMAN_TRANSFORMATION.format(gender=gender)
    return GHOST_TRANSFORMATION


def compile_instructions(config: GenerationConfig, task_kind: TaskKind) -> CompiledInstructions:
    lighting = config.lighting
    garment = config.garment
    environment, shadow = compile_background(config.background.resolve(), lighting)
    return CompiledInstructions(
        environment=environment,
        shadow=shadow,
        main_light=compile_main_light(lighting, task_kind),
        rim_light=compile_rim_light(lighting),
        material=compile_material(garment.primary_fabric, garment.secondary_fabric),
        weight=weight_hint(garment.primary_fabric),
        structure=GARMENT_STRUCTURE[garment.garment_type],
        fit=FIT_PHYSICS[garment.fit_type],
        core_transformation=compile_core_transformation(task_kind, config.presentation.gender),
    )


def upscale_instructions(resolution: Resolution) -> str:
    return f"""Upscale this product image to {resolution} resolution.
**CRITICAL**: This is a product preservation task.
- Do NOT hallucinate new patterns or change the text on the clothing.
- Enhance only the *fidelity* of the existing texture (thread count, fabric fuzz).
- Sharpen edges and reduce noise.
- Maintain original lighting direction and color values.
- 8k resolution, highly detailed."""


# Fallback tier prompt: enhancement only, nothing about garments or scenes.
ENHANCEMENT_INSTRUCTIONS = """Enhance and refine this image. Increase sharpness, improve lighting, and clean up details.
Output a high-quality, professional product photo. 8k resolution.
Do not alter the design or logos."""

TRY_ON_INSTRUCTIONS = """Perform a virtual try-on task.

INPUTS:
- Image 1: A garment/clothing item (Source).
- Image 2: A model/person (Target).

TASK:
Generate a new photorealistic image of the person from Image 2 wearing the garment from Image 1.

EXTRACTION & PHYSICS RULES:
1. **Isolation**: Extract the garment from Image 1 perfectly. Ignore the hanger, floor, or background.
2. **Fitting**: Warp the garment to match the body shape and pose of the model in Image 2.
3. **Physics**: Ensure gravity pulls the fabric correctly. Add folds where the body bends (elbows, waist).
4. **Lighting**: Match the lighting from Image 2 onto the new garment.

REQUIREMENTS:
- Preserve the person's identity and original background from Image 2.
- High quality, 8k resolution."""

AD_COPY_VOICES = ("witty", "edgy", "minimalist", "sarcastic", "aspirational")

AD_COPY_SYSTEM_INSTRUCTION = """You are a social media manager for a hype streetwear brand. The audience is Gen Z youth who love hoodies, loose-fit t-shirts, and cargos.

Generate 5 distinct ad copy options for the provided clothing image:
1. 'witty': Use heavy internet slang (drip, no cap, bet, vibe check), emojis, and be high energy/funny.
2. 'edgy': Darker, rebellious, mysterious tone. Short, punchy sentences. Focus on non-conformity.
3. 'minimalist': Focus purely on the "clean" aesthetic, comfort, fit, and materials. Relaxed and effortless tone.
4. 'sarcastic': Deadpan, self-aware, roasting the consumer slightly or mocking hype culture while selling it.
5. 'aspirational': High-status, expensive feel, "you have made it" vibe, focus on exclusivity and lifestyle.

Output JSON."""

AD_COPY_PROMPT = "Analyze this item and write ad copy variations."


def ad_copy_schema() -> Dict:
    """Gemini REST responseSchema requiring all five voices."""
    voice = {
        "type": "OBJECT",
        "properties": {
            "headline": {"type": "STRING", "description": "A hook appropriate for the specific style."},
            "body": {"type": "STRING", "description": "Caption text."},
            "hashtags": {
                "type": "ARRAY",
                "items": {"type": "STRING"},
                "description": "5 relevant trending hashtags.",
            },
        },
        "required": ["headline", "body", "hashtags"],
    }
    return {
        "type": "OBJECT",
        "properties": {name: voice for name in AD_COPY_VOICES},
        "required": list(AD_COPY_VOICES),
    }
