from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, RootModel

SuggestionMode = Literal["character", "design", "generic", "style"]


class UploadRequest(BaseModel):
    image: str = Field(min_length=1)  # data:image/...;base64,...


class SuggestionRequest(BaseModel):
    mode: SuggestionMode = "character"


class AnimationRequest(BaseModel):
    mode: Literal["animation"]
    prompt: str | None = None
    auto: bool = True
    frame_prompts: list[str] = Field(default=[], max_length=6)


class CharacterRequest(BaseModel):
    mode: Literal["character"]
    characters: str


class StyleRequest(BaseModel):
    mode: Literal["style"]
    styles: str


TransformationRequest = Annotated[
    Union[AnimationRequest, CharacterRequest, StyleRequest],
    Field(discriminator="mode"),
]


class GifRequest(BaseModel):
    delay_ms: int = Field(default=300, ge=100, le=1000)
    loop: int = Field(default=0, ge=0, le=100)  # 0 = infinite
    download: bool = False


class GenerateRequest(RootModel[TransformationRequest]):
    """Request body for generation: one of the three mode-specific shapes."""
