"""Animated GIF assembly for a session's frame sequence."""

import io
import logging
from collections.abc import Sequence

from PIL import Image

from gifstudio.agents.gemini import split_data_url
from gifstudio.config import settings
from gifstudio.models.response import GeneratedFrame

logger = logging.getLogger(__name__)


def _load_frame(frame: GeneratedFrame, size: tuple[int, int]) -> Image.Image:
    _, data = split_data_url(frame.data_url)
    img = Image.open(io.BytesIO(data))
    img = img.convert("RGB")
    if img.size != size:
        img = img.resize(size, Image.LANCZOS)
    return img


def assemble_gif(
    frames: Sequence[GeneratedFrame],
    *,
    delay_ms: int = settings.gif_delay_ms,
    loop: int = 0,
    size: tuple[int, int] | None = None,
) -> bytes:
    """Encode ``frames`` (in index order) as an animated GIF.

    ``loop`` is the GIF loop count; 0 repeats forever. Every frame is scaled to
    ``size``, which defaults to the configured GIF canvas.
    """
    if len(frames) < 2:
        raise ValueError("Please generate at least 2 images first")

    size = size or (settings.gif_width, settings.gif_height)
    ordered = sorted(frames, key=lambda f: f.index)
    images = [_load_frame(f, size) for f in ordered]

    buf = io.BytesIO()
    images[0].save(
        buf,
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=delay_ms,
        loop=loop,
        disposal=2,
    )
    data = buf.getvalue()
    logger.info("Assembled GIF: %d frames, %dms delay, %d bytes", len(images), delay_ms, len(data))
    return data
