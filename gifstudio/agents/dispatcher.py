import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from google.genai import types

from gifstudio.agents.gemini import first_image, generate_image, to_data_url
from gifstudio.models.response import ORIGINAL_PROMPT, GeneratedFrame

logger = logging.getLogger(__name__)

FRAME_TEMPLATE = "Transform this image according to the following description: {prompt}"
STYLE_TEMPLATE = "{prompt}"


def template_for(mode: str) -> str:
    """Style prompts are complete instructions already; other modes get the frame preamble."""
    return STYLE_TEMPLATE if mode == "style" else FRAME_TEMPLATE


def original_frame(source: str) -> GeneratedFrame:
    return GeneratedFrame(data_url=source, prompt=ORIGINAL_PROMPT, index=0)


@dataclass
class DispatchResult:
    frames: list[GeneratedFrame] = field(default_factory=list)
    error: str | None = None

    @property
    def generated(self) -> list[GeneratedFrame]:
        return [f for f in self.frames if f.index > 0]


async def iter_frames(
    image: types.Part,
    prompts: Sequence[str],
    template: str = FRAME_TEMPLATE,
) -> AsyncIterator[GeneratedFrame]:
    """Generate one frame per non-empty prompt, strictly in order.

    Prompts whose response carries no image are skipped. Exceptions from the
    image model propagate and end the iteration.
    """
    for i, prompt in enumerate(prompts):
        if not prompt:
            continue
        text = template.format(prompt=prompt)
        parts = await generate_image(image, text)
        found = first_image(parts)
        if found is None:
            logger.warning("No image returned for frame %d", i + 1)
            continue
        data, mime_type = found
        logger.info("Frame %d generated (%d bytes, %s)", i + 1, len(data), mime_type)
        yield GeneratedFrame(data_url=to_data_url(data, mime_type), prompt=text, index=i + 1)


async def dispatch(
    source: str,
    image: types.Part,
    prompts: Sequence[str],
    template: str = FRAME_TEMPLATE,
) -> DispatchResult:
    """Run every prompt through the image model and collect the frames.

    The first failure stops the loop; frames collected so far are kept and the
    error is reported alongside them. The original image is always frame 0.
    """
    result = DispatchResult()
    try:
        async for frame in iter_frames(image, prompts, template):
            result.frames.append(frame)
    except Exception as e:
        logger.error("Generation aborted after %d frames: %s", len(result.frames), e)
        result.error = f"Error generating images: {str(e) or 'Unknown error'}"

    result.frames.insert(0, original_frame(source))
    if not result.generated and result.error is None:
        result.error = "No images were generated. Please try again."
    return result
