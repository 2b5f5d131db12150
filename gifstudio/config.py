from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "DEBUG"
    api_key: str = ""  # Empty = auth disabled (local dev); set to enable API key validation

    gemini_api_key: str = ""
    image_model: str = "gemini-2.0-flash-exp-image-generation"
    thinking_model: str = "gemini-2.0-flash-thinking-exp-01-21"
    response_modalities: list[str] = Field(default_factory=lambda: ["TEXT", "IMAGE"])

    frame_count: int = 6
    style_analysis_enabled: bool = True
    preserve_colors: bool = True
    preserve_background: bool = True

    presets_dir: str = "./presets"
    max_image_dimension: int = 1500

    gif_width: int = 512
    gif_height: int = 512
    gif_delay_ms: int = 300

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
