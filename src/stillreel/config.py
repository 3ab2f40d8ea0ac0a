"""Application configuration using Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "stillreel"


class Settings(BaseSettings):
    """Stillreel configuration loaded from environment variables."""

    model_config = {"env_prefix": "STILLREEL_", "env_file": ".env", "extra": "ignore"}

    # Directories
    cache_dir: Path = Field(default_factory=_default_cache_dir)

    # External tools
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"

    # Encoder session
    max_pending_frames: int = Field(default=4, ge=1)
    finalize_timeout_seconds: float = Field(default=120.0, gt=0)
    stderr_tail_lines: int = Field(default=30, ge=1)

    # Rendering
    output_crf: int = 23
    output_preset: str = "medium"
    output_pixel_format: str = "yuv420p"
    verify_output: bool = False


def get_settings() -> Settings:
    """Return a settings instance."""
    return Settings()
