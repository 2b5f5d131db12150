import io
from unittest.mock import AsyncMock, patch

import pytest
from google.genai import types
from PIL import Image

from gifstudio.agents.gemini import to_data_url
from gifstudio.models.response import StyleProfile
from tests import TEST_API_KEY

# Minimal valid 1x1 PNG as base64
TINY_PNG = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
TINY_DATA_URL = f"data:image/png;base64,{TINY_PNG}"

API_KEY_HEADER = {"X-API-Key": TEST_API_KEY}

MOCK_PROFILE = StyleProfile(
    palette=["#1a2b3c", "#ffcc00", "#ffffff"],
    dominantColor="#1a2b3c",
    backgroundColor="#ffffff",
    style="flat vector illustration",
    lighting="soft diffuse",
    texture="smooth",
    background="a plain white studio backdrop",
)

MOCK_STYLE_REPLY = """Here is the analysis you asked for:
```json
{
    "palette": ["#1a2b3c", "#ffcc00", "#ffffff"],
    "dominantColor": "#1a2b3c",
    "backgroundColor": "#ffffff",
    "style": "flat vector illustration",
    "lighting": "soft diffuse",
    "texture": "smooth",
    "background": "a plain white studio backdrop"
}
```
Let me know if you need anything else."""


def png_bytes(color: tuple[int, int, int] = (255, 0, 0), size: tuple[int, int] = (8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(color: tuple[int, int, int] = (255, 0, 0)) -> str:
    return to_data_url(png_bytes(color), "image/png")


def image_parts(color: tuple[int, int, int] = (0, 255, 0)) -> list[types.Part]:
    """A typical image-model response: some chatter, then the image."""
    return [
        types.Part(text="Here is your transformed image."),
        types.Part.from_bytes(data=png_bytes(color), mime_type="image/png"),
    ]


@pytest.fixture
def mock_generate_text():
    """Patch every thinking-model call site with one AsyncMock."""
    mock = AsyncMock(return_value=MOCK_STYLE_REPLY)
    with (
        patch("gifstudio.agents.style_analyzer.generate_text", mock),
        patch("gifstudio.agents.advisor.generate_text", mock),
        patch("gifstudio.agents.synthesizer.generate_text", mock),
    ):
        yield mock


@pytest.fixture
def mock_generate_image():
    """Patch the image model to return one image per call."""
    mock = AsyncMock(side_effect=lambda image, prompt: image_parts())
    with patch("gifstudio.agents.dispatcher.generate_image", mock):
        yield mock


@pytest.fixture(autouse=True)
def _set_api_key(monkeypatch):
    """Patch the settings object API key for all tests."""
    from gifstudio.config import settings

    monkeypatch.setattr(settings, "api_key", TEST_API_KEY)


@pytest.fixture(autouse=True)
def _clear_sessions():
    from gifstudio.sessions import sessions

    sessions.clear()
    yield
    sessions.clear()
