import logging

from google.genai import types

from gifstudio.agents.gemini import generate_text
from gifstudio.agents.parsing import parse_json
from gifstudio.models.request import SuggestionMode
from gifstudio.models.response import UNKNOWN, Suggestions

logger = logging.getLogger(__name__)

SUGGESTION_COUNT = 6

_INSTRUCTIONS: dict[str, str] = {
    "character": (
        "Analyze this image and suggest 6 diverse characters that would look interesting "
        "if this image were transformed into them while maintaining the same style, colors, and setting."
    ),
    "design": (
        "Analyze this image and suggest 6 different design variations that would maintain "
        "the same style, color palette, and overall feel but with different layouts or elements."
    ),
    "generic": (
        "Analyze this image and suggest 6 diverse alternatives or variations that would look "
        "interesting while maintaining the same visual style and aesthetic."
    ),
    "style": (
        "Analyze this image and suggest 6 diverse artistic styles that would look interesting "
        "when applied to this image. Consider the subject matter and what styles would complement it well."
    ),
}

_RESPONSE_FORMAT = """
First determine what type of content this image contains (character, product, interior design, landscape, etc.).

Return ONLY a JSON object with this structure:
{
    "contentType": "brief description of what the image contains",
    "suggestions": ["suggestion1", "suggestion2", "suggestion3", "suggestion4", "suggestion5", "suggestion6"]
}
"""

_PLACEHOLDERS: dict[str, list[str]] = {
    "character": ["rabbit", "dragon", "fox", "owl", "tiger", "raccoon"],
    "style": ["Disney style", "Pixar style", "Anime style", "Watercolor painting", "Oil painting", "Cartoon style"],
}


def placeholder_suggestions(mode: SuggestionMode) -> list[str]:
    return list(_PLACEHOLDERS.get(mode, [f"variation {i}" for i in range(1, SUGGESTION_COUNT + 1)]))


def _fill(suggestions: list[str], mode: SuggestionMode) -> list[str]:
    """Trim to six entries, topping up short lists from the mode placeholders."""
    cleaned = [s.strip() for s in suggestions if s.strip()][:SUGGESTION_COUNT]
    for extra in placeholder_suggestions(mode):
        if len(cleaned) >= SUGGESTION_COUNT:
            break
        if extra not in cleaned:
            cleaned.append(extra)
    return cleaned


async def suggest_targets(image: types.Part, mode: SuggestionMode = "character") -> Suggestions:
    """Ask the thinking model for six transformation targets suited to ``image``."""
    instruction = f"{_INSTRUCTIONS[mode]}\n{_RESPONSE_FORMAT}"
    try:
        text = await generate_text(image, instruction)
    except Exception as e:
        logger.error("Suggestion request failed: %s", e)
        return Suggestions(
            content_type=UNKNOWN,
            suggestions=[f"option {i}" for i in range(1, SUGGESTION_COUNT + 1)],
        )

    parsed = parse_json(text, Suggestions)
    if parsed is None:
        return Suggestions(content_type=UNKNOWN, suggestions=placeholder_suggestions(mode))

    logger.info("Suggestions for %s mode: content=%s", mode, parsed.content_type)
    return Suggestions(content_type=parsed.content_type, suggestions=_fill(parsed.suggestions, mode))
