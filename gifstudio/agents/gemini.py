import base64
import binascii
import io
import logging
from functools import lru_cache

from google import genai
from google.genai import types
from PIL import Image

from gifstudio.config import settings

logger = logging.getLogger(__name__)

# Max dimension (longest side) for images sent to Gemini.
# Uploads stay untouched in the session; only the request copy is shrunk.
MAX_IMAGE_DIMENSION = settings.max_image_dimension


def split_data_url(data_url: str) -> tuple[str, bytes]:
    """Return (mime_type, raw bytes) for a ``data:<mime>;base64,<payload>`` URL."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValueError("Expected a base64 data URL")
    mime_type = header[len("data:"):].split(";", 1)[0]
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 image payload: {e}") from e
    return mime_type, data


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def _optimize_image(image_bytes: bytes, max_dim: int = MAX_IMAGE_DIMENSION) -> bytes:
    """Resize and convert to JPEG for smaller request size. Returns JPEG bytes."""
    img = Image.open(io.BytesIO(image_bytes))
    w, h = img.size
    if max(w, h) > max_dim:
        scale = max_dim / max(w, h)
        new_size = (int(w * scale), int(h * scale))
        img = img.resize(new_size, Image.LANCZOS)
        logger.info("Resized image from %dx%d to %dx%d", w, h, *new_size)
    # JPEG has no alpha channel or palette mode
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=85)
    return buf.getvalue()


def image_part(data_url: str) -> types.Part:
    """Build the inline image part sent alongside every prompt for a session image."""
    _, raw = split_data_url(data_url)
    return types.Part.from_bytes(data=_optimize_image(raw), mime_type="image/jpeg")


@lru_cache(maxsize=1)
def get_client() -> genai.Client:
    # None lets the SDK fall back to GEMINI_API_KEY / GOOGLE_API_KEY
    return genai.Client(api_key=settings.gemini_api_key or None)


async def generate_text(image: types.Part, instruction: str) -> str:
    """Ask the thinking model about an image and return its free-text reply."""
    logger.debug("Thinking request to %s: %s", settings.thinking_model, instruction[:120])
    response = await get_client().aio.models.generate_content(
        model=settings.thinking_model,
        contents=[image, instruction],
    )
    text = response.text or ""
    logger.info("Thinking response received (%d chars)", len(text))
    return text


async def generate_image(image: types.Part, prompt: str) -> list[types.Part]:
    """Run one image-model call and return the parts of its first candidate."""
    logger.debug("Image request to %s: %s", settings.image_model, prompt[:120])
    response = await get_client().aio.models.generate_content(
        model=settings.image_model,
        contents=[image, prompt],
        config=types.GenerateContentConfig(response_modalities=settings.response_modalities),
    )
    if not response.candidates:
        return []
    content = response.candidates[0].content
    if content is None or not content.parts:
        return []
    return list(content.parts)


def first_image(parts: list[types.Part]) -> tuple[bytes, str] | None:
    """Return (data, mime_type) of the first inline image part, if any."""
    for part in parts:
        inline = part.inline_data
        if inline is not None and inline.data:
            return inline.data, inline.mime_type or "image/png"
    return None
