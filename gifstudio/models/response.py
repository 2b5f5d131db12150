from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

UNKNOWN = "unknown"
UNKNOWN_SUBJECT = "unknown subject"
UNKNOWN_COMPOSITION = "unknown composition"
ORIGINAL_PROMPT = "Original Image"


def is_known(value: str | None) -> bool:
    """True when a profile field carries real information."""
    if value is None:
        return False
    value = value.strip()
    return bool(value) and value.lower() not in (UNKNOWN, UNKNOWN_SUBJECT, UNKNOWN_COMPOSITION)


class StyleProfile(BaseModel):
    """Visual character of an uploaded image, as described by the thinking model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    palette: list[str] = []
    dominant_color: str | None = Field(default=None, alias="dominantColor")
    background_color: str | None = Field(default=None, alias="backgroundColor")
    style: str = UNKNOWN
    lighting: str = UNKNOWN
    texture: str = UNKNOWN
    background: str = UNKNOWN

    @field_validator("palette", mode="before")
    @classmethod
    def _null_palette(cls, value):
        return [] if value is None else value

    @field_validator("style", "lighting", "texture", "background", mode="before")
    @classmethod
    def _null_text(cls, value):
        return UNKNOWN if value is None else value

    @classmethod
    def unknown(cls) -> "StyleProfile":
        return cls()

    @property
    def is_unknown(self) -> bool:
        return not (
            self.palette
            or is_known(self.dominant_color)
            or is_known(self.background_color)
            or any(is_known(v) for v in (self.style, self.lighting, self.texture, self.background))
        )


class ColorProfile(BaseModel):
    """Narrower analysis used by style mode: colours, subject and composition."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    palette: list[str] = []
    dominant_color: str | None = Field(default=None, alias="dominantColor")
    subject: str = UNKNOWN_SUBJECT
    composition: str = UNKNOWN_COMPOSITION

    @field_validator("palette", mode="before")
    @classmethod
    def _null_palette(cls, value):
        return [] if value is None else value

    @field_validator("subject", mode="before")
    @classmethod
    def _null_subject(cls, value):
        return UNKNOWN_SUBJECT if value is None else value

    @field_validator("composition", mode="before")
    @classmethod
    def _null_composition(cls, value):
        return UNKNOWN_COMPOSITION if value is None else value

    @classmethod
    def unknown(cls) -> "ColorProfile":
        return cls()


class Suggestions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field(
        default=UNKNOWN,
        validation_alias=AliasChoices("contentType", "content_type", "subject"),
    )
    suggestions: list[str] = Field(min_length=1)


class GeneratedFrame(BaseModel):
    data_url: str
    prompt: str
    index: int = Field(ge=0)


class SessionInfo(BaseModel):
    id: str
    created_at: datetime
    profile: StyleProfile | None
    frame_count: int
    generating: bool


class GenerationResponse(BaseModel):
    session_id: str
    prompts: list[str]
    frames: list[GeneratedFrame]
    error: str | None = None
