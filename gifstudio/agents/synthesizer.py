"""Turn one user intent into the ordered prompts sent to the image model.

Gemini keeps no memory between calls, so every prompt restates the style
constraints of the source image in full. Animation and character modes
always produce ``settings.frame_count`` prompts; style mode produces one per
requested style.
"""

import logging
import re
from collections.abc import Callable, Sequence

from google.genai import types

from gifstudio.agents.gemini import generate_text
from gifstudio.agents.parsing import parse_json
from gifstudio.agents.style_analyzer import extract_colors
from gifstudio.config import settings
from gifstudio.errors import InvalidRequestError
from gifstudio.models.request import AnimationRequest, CharacterRequest, StyleRequest
from gifstudio.models.response import ColorProfile, StyleProfile, is_known
from gifstudio.presets.definitions import style_description

logger = logging.getLogger(__name__)

_ORDINALS = ("first", "second", "third", "fourth", "fifth")
_ENUMERATION = re.compile(r"^(Frame \d+:|\d+\.|\*)\s*")

FramePromptStrategy = Callable[[str | None, str], list[str] | None]


def parse_targets(text: str) -> list[str]:
    """Split comma-separated input into trimmed, non-empty entries."""
    return [item.strip() for item in text.split(",") if item.strip()]


def pad_round_robin(items: Sequence[str], size: int) -> list[str]:
    """Repeat ``items`` in order until exactly ``size`` entries: cat,dog -> cat,dog,cat,dog,..."""
    if not items:
        raise ValueError("pad_round_robin needs at least one item")
    return [items[i % len(items)] for i in range(size)]


def _known_or(value: str | None, fallback: str) -> str:
    return value.strip() if is_known(value) else fallback


def create_style_preserving_prompt(base: str, profile: StyleProfile | None) -> str:
    """Append an explicit preservation clause for every known profile field."""
    if profile is None:
        return base

    preserved = []
    if is_known(profile.style):
        preserved.append(f"the {profile.style} style")
    if settings.preserve_colors:
        palette = ", ".join(profile.palette[:5])
        if is_known(profile.dominant_color) and palette:
            preserved.append(f"the dominant color {profile.dominant_color} and the color palette ({palette})")
        elif is_known(profile.dominant_color):
            preserved.append(f"the dominant color {profile.dominant_color} and the specific color palette")
        elif palette:
            preserved.append(f"the color palette ({palette})")
    if settings.preserve_background and is_known(profile.background):
        preserved.append(f"the original background details ({profile.background})")
    if is_known(profile.lighting):
        preserved.append(f"the {profile.lighting} lighting characteristics")
    if is_known(profile.texture):
        preserved.append(f"the {profile.texture} texture qualities")
    preserved.append("composition")

    return (
        f"{base.rstrip().rstrip('.')}. Transform this image while meticulously preserving "
        f"{', '.join(preserved)}, and overall visual identity of the original image. "
        "Maintain exact proportions, perspective, and spatial arrangement while applying the transformation."
    )


# --- animation mode ---------------------------------------------------------


def _style_context(profile: StyleProfile | None) -> str:
    if profile is None:
        return ""
    return f"""
The image has the following style characteristics:
- Style: {_known_or(profile.style, 'Unknown')}
- Dominant colors: {', '.join(profile.palette) or 'Unknown'}
- Background: {_known_or(profile.background, 'Unknown')}
- Lighting: {_known_or(profile.lighting, 'Unknown')}
- Texture: {_known_or(profile.texture, 'Unknown')}

CRITICAL: Each prompt MUST meticulously maintain all these style characteristics with precise detail!
Each prompt must be at least 20 words long and specifically describe how to maintain the exact style, colors, lighting, texture, and composition.
"""


def _frame_prompt_instruction(base: str, profile: StyleProfile | None) -> str:
    count = settings.frame_count
    return f"""
I'm seeing this image and I want to create a sequence of {count} frames showing a continuous motion or transformation based on this prompt: "{base}".
{_style_context(profile)}
Looking at the specific content of the image, generate {count} detailed prompts, one for each frame, that show a clear progression or animation sequence based on both the image content and the action prompt.

REQUIREMENTS:
1. Each prompt MUST be at least 20 words long with specific style preservation details
2. Each prompt must explicitly instruct to preserve the original image's exact style, colors, lighting, texture, and background
3. Each prompt must maintain perfect visual consistency across all frames
4. Prompts must be specific to the actual content visible in the image
5. Each prompt should read as a complete instruction for transforming the original image

For example, if there's a person in the image and the base prompt is "walk", you might generate:
Frame 1: "Transform this image to show the person beginning to take a step with right foot forward while meticulously preserving the exact lighting, color palette, texture details, background elements, and compositional balance of the original image."

Return ONLY the {count} prompts in a JSON array format like this:
["Frame 1 prompt", "Frame 2 prompt", ...]

Your prompts should be specific to the actual objects, people, or scenes shown in the image while strictly preserving style.
"""


def _pad_variations(prompts: list[str], base: str) -> list[str]:
    return prompts + [f"{base} - variation {i + 1}" for i in range(len(prompts), settings.frame_count)]


def _structured(text: str | None, base: str) -> list[str] | None:
    prompts = parse_json(text, list[str], kind="array") if text is not None else None
    if prompts is None:
        return None
    cleaned = [p.strip() for p in prompts if p.strip()][: settings.frame_count]
    return _pad_variations(cleaned, base) if cleaned else None


def _line_heuristic(text: str | None, base: str) -> list[str] | None:
    if text is None:
        return None
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    prompts = []
    for i in range(settings.frame_count):
        prompt = _ENUMERATION.sub("", lines[i]).strip() if i < len(lines) else ""
        prompts.append(prompt or f"{base} - variation {i + 1}")
    return prompts


def _ordinal(i: int, count: int) -> str:
    if i == count - 1:
        return "final"
    return _ORDINALS[i] if i < len(_ORDINALS) else f"{i + 1}th"


def _template(text: str | None, base: str) -> list[str]:
    count = settings.frame_count
    return [f"{base} - {_ordinal(i, count)} step" for i in range(count)]


# Tried in order; the last one always succeeds.
FRAME_PROMPT_STRATEGIES: tuple[FramePromptStrategy, ...] = (_structured, _line_heuristic, _template)


async def animation_prompts(base: str, profile: StyleProfile | None, image: types.Part) -> list[str]:
    """Ask the thinking model to break ``base`` into an ordered progression of frame prompts."""
    try:
        text = await generate_text(image, _frame_prompt_instruction(base, profile))
    except Exception as e:
        logger.error("Frame prompt generation failed for %r: %s", base, e)
        text = None

    for strategy in FRAME_PROMPT_STRATEGIES:
        prompts = strategy(text, base)
        if prompts is not None:
            logger.info("Frame prompts for %r built by %s", base, strategy.__name__.lstrip("_"))
            return prompts
    raise RuntimeError("template strategy produced no prompts")


def manual_prompts(frame_prompts: Sequence[str], profile: StyleProfile | None) -> list[str]:
    """User-written frame prompts, in order. Empty slots stay empty for the dispatcher to skip."""
    prompts = [p.strip() for p in frame_prompts[: settings.frame_count]]
    if not any(prompts):
        raise InvalidRequestError("Please enter at least one prompt to describe the image transformation")
    return [create_style_preserving_prompt(p, profile) if p else "" for p in prompts]


# --- character mode ---------------------------------------------------------


def character_prompts(characters: Sequence[str], profile: StyleProfile | None) -> list[str]:
    if len(characters) > settings.frame_count:
        logger.warning(
            "Only %d character targets fit; dropping %s",
            settings.frame_count,
            ", ".join(characters[settings.frame_count :]),
        )
    targets = pad_round_robin(characters, settings.frame_count)
    if profile is None or profile.is_unknown:
        prompts = [
            f"Transform this image into a {target} while precisely maintaining the original style, "
            "color palette, lighting characteristics, textural details, background elements, compositional "
            "structure, and overall visual identity. Ensure perfect preservation of the aesthetic qualities "
            "and mood while changing only the subject."
            for target in targets
        ]
    else:
        style = _known_or(profile.style, "current")
        background = _known_or(profile.background, "existing")
        lighting = _known_or(profile.lighting, "original")
        prompts = [
            f"Transform this image into a {target} while meticulously preserving the {style} style, "
            f"the {background} background, the {lighting} lighting conditions, color relationships, "
            "textural details, compositional balance, and spatial arrangement of elements. "
            "Maintain the exact mood and aesthetic quality."
            for target in targets
        ]
    return [create_style_preserving_prompt(p, profile) for p in prompts]


# --- style mode -------------------------------------------------------------


def style_prompts(
    styles: Sequence[str],
    colors: ColorProfile | None,
    profile: StyleProfile | None = None,
) -> list[str]:
    """One prompt per style name; curated descriptions are used for preset styles."""
    prompts = []
    for style in styles:
        prompt = f"Transform this image into {style}"
        description = style_description(style)
        if description:
            prompt += f" with {description.rstrip('.')}"
        prompt += ". Carefully maintain the exact subject matter, pose, composition, and spatial arrangement. "

        if colors is not None:
            if is_known(colors.subject):
                prompt += f"The subject is: {colors.subject}. "
            if is_known(colors.composition):
                prompt += f"The composition is: {colors.composition}. "
            if colors.palette:
                prompt += (
                    f"Adapt these key colors to match the {style} aesthetic while respecting the original "
                    f"color relationships: {', '.join(colors.palette[:5])}. "
                )
            if is_known(colors.dominant_color):
                prompt += f"The dominant color is {colors.dominant_color}. "

        if profile is not None:
            if settings.preserve_background and is_known(profile.background):
                prompt += (
                    f"Carefully preserve the fundamental elements of the background ({profile.background}) "
                    "while adapting them to the new style. "
                )
            if is_known(profile.lighting):
                prompt += f"Maintain the {profile.lighting} lighting characteristics adapted to {style} conventions. "
            if is_known(profile.texture):
                prompt += f"Translate the {profile.texture} texture qualities into the {style} visual language. "

        prompt += (
            f"The result should be immediately recognizable as the same subject/scene but authentically "
            f"rendered in {style}. Ensure perfect preservation of the content, pose, expressions, and "
            "composition while only changing the visual style."
        )
        prompts.append(prompt)
    return prompts


async def synthesize(
    request: AnimationRequest | CharacterRequest | StyleRequest,
    profile: StyleProfile | None,
    image: types.Part | None = None,
) -> list[str]:
    """Build the ordered prompt sequence for ``request``.

    Raises InvalidRequestError for empty input, before any remote call.
    """
    match request:
        case AnimationRequest(auto=True):
            base = (request.prompt or "").strip()
            if not base:
                raise InvalidRequestError("Please enter a prompt")
            prompts = await animation_prompts(base, profile, image)
            return [create_style_preserving_prompt(p, profile) for p in prompts]
        case AnimationRequest():
            return manual_prompts(request.frame_prompts, profile)
        case CharacterRequest():
            characters = parse_targets(request.characters)
            if not characters:
                raise InvalidRequestError("Please enter a character or select from presets")
            return character_prompts(characters, profile)
        case StyleRequest():
            styles = parse_targets(request.styles)
            if not styles:
                raise InvalidRequestError("Please enter a style or select from presets")
            colors = await extract_colors(image)
            return style_prompts(styles, colors, profile)
    raise InvalidRequestError(f"Unsupported mode: {request.mode}")
