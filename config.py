"""Global configuration for Settlers of Mars: session core + OpenAI capabilities."""
from pathlib import Path
from typing import Dict, Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralised settings read from .env file automatically."""

    # ── Paths ──────────────────────────────────────────────
    PROJECT_ROOT: Path = Path(__file__).parent
    EXPORT_DIR: Path = Path(__file__).parent / "exports"

    # ── OpenAI / LLM API ──────────────────────────────────
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_BASE_URL: str = Field(default="", description="OpenAI-compatible API base URL (e.g. https://your-server.com/v1)")
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_IMAGE_MODEL: str = "gpt-image-1"
    OPENAI_MAX_TOKENS: int = 1536
    OPENAI_TEMPERATURE: float = 0.8

    # aspect ratio -> provider size string
    IMAGE_SIZES: Dict[str, str] = {
        "wide": "1536x1024",
        "square": "1024x1024",
    }

    # ── Capability profile ────────────────────────────────
    # classic:        story + one image, no habitat tracking
    # habitat:        story + one image + habitat modules
    # habitat_render: habitat + a second render of habitatStatus
    CAPABILITY_PROFILE: Literal["classic", "habitat", "habitat_render"] = "habitat"

    # ── Session Config ────────────────────────────────────
    HISTORY_SEPARATOR: str = "\n---\n"
    BEGIN_ACTION: str = "Start the game"

    # ── Habitat Layout ────────────────────────────────────
    LAYOUT_RADIUS: float = 4.0
    LAYOUT_ANGLE_STEP_DEG: float = 60.0

    # ── Logging / Gradio ──────────────────────────────────
    LOG_LEVEL: str = "INFO"
    GRADIO_PORT: int = 7860

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton settings instance used by every module
settings = Settings()
