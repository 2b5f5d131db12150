import logging

from google.genai import types

from gifstudio.agents.gemini import generate_text
from gifstudio.agents.parsing import parse_or_default
from gifstudio.config import settings
from gifstudio.models.response import ColorProfile, StyleProfile

logger = logging.getLogger(__name__)

STYLE_INSTRUCTION = """
Analyze this image and extract detailed style information:
1. Main color palette (list the top 5-7 colors with their approximate hex codes)
2. Overall style (realistic, cartoon, 3D render, painting, etc.)
3. Lighting characteristics (bright, dark, high contrast, etc.)
4. Texture details (smooth, grainy, detailed, etc.)
5. Background description

Return ONLY a JSON object with this structure:
{
    "palette": ["#HEXCODE1", "#HEXCODE2", ...],
    "dominantColor": "#HEXCODE",
    "backgroundColor": "#HEXCODE",
    "style": "brief style description",
    "lighting": "lighting description",
    "texture": "texture description",
    "background": "background description"
}
"""

COLOR_INSTRUCTION = """
Analyze ONLY the colors and basic features of this image:
1. Main color palette (list the top 5-7 colors with their approximate hex codes)
2. Subject description (what is shown in the image)
3. Basic composition and layout

Return ONLY a JSON object with this structure:
{
    "palette": ["#HEXCODE1", "#HEXCODE2", ...],
    "dominantColor": "#HEXCODE",
    "subject": "brief subject description",
    "composition": "basic composition description"
}
"""


async def extract_style(image: types.Part) -> StyleProfile | None:
    """Describe the palette, lighting, texture and background of ``image``.

    An unparseable reply yields ``StyleProfile.unknown()``. ``None`` means the
    remote call itself failed (or analysis is switched off) and callers should
    proceed without style constraints.
    """
    if not settings.style_analysis_enabled:
        return None
    try:
        text = await generate_text(image, STYLE_INSTRUCTION)
    except Exception as e:
        logger.error("Style analysis failed: %s", e)
        return None

    profile = parse_or_default(text, StyleProfile, StyleProfile.unknown())
    logger.info("Style profile: style=%s, %d palette colors", profile.style, len(profile.palette))
    return profile


async def extract_colors(image: types.Part) -> ColorProfile | None:
    """Lighter analysis used by style mode: palette, subject and composition only."""
    try:
        text = await generate_text(image, COLOR_INSTRUCTION)
    except Exception as e:
        logger.error("Color analysis failed: %s", e)
        return None
    return parse_or_default(text, ColorProfile, ColorProfile.unknown())
