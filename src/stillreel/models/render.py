"""Render configuration and result models."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stillreel.models.errors import ErrorDetail, RenderFailed


class VideoCodec(StrEnum):
    """Video codecs the encoder sink can be configured with."""

    H264 = "h264"
    HEVC = "hevc"
    MPEG4 = "mpeg4"


class EncoderState(StrEnum):
    """Lifecycle of an encoder session."""

    IDLE = "idle"
    PREPARED = "prepared"
    WRITING = "writing"
    FINISHING = "finishing"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (EncoderState.FINISHED, EncoderState.FAILED)


class RenderSettings(BaseModel):
    """Immutable description of the video to produce."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0, description="Frame width in pixels")
    height: int = Field(..., gt=0, description="Frame height in pixels")
    fps: int = Field(default=6, gt=0, description="Frames per second")
    codec: VideoCodec = Field(default=VideoCodec.H264)
    video_filename: str = Field(default="render", min_length=1)
    video_filename_ext: str = Field(default="mp4", min_length=1)
    output_dir: Path | None = Field(
        default=None, description="Directory for the output; defaults to the cache directory"
    )

    @field_validator("video_filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError(f"video_filename must not contain path separators, got {v!r}")
        return v

    @field_validator("video_filename_ext")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        ext = v.lstrip(".").lower()
        if not ext:
            raise ValueError("video_filename_ext must not be empty")
        return ext

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def output_path(self) -> Path:
        """Output file location; creates the directory on first use."""
        from stillreel.storage.output_store import resolve_output_dir

        directory = resolve_output_dir(self.output_dir)
        return directory / f"{self.video_filename}.{self.video_filename_ext}"


class RenderOutcome(BaseModel):
    """Result delivered to the completion callback of a render."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    output_path: str = Field(..., description="Path to the rendered output file")
    frames_written: int = Field(default=0, ge=0)
    fps: int = Field(default=6, gt=0)
    error: ErrorDetail | None = None
    failure: RenderFailed | None = Field(default=None, exclude=True)

    @property
    def output_file(self) -> Path:
        return Path(self.output_path)

    @property
    def duration(self) -> float:
        return self.frames_written / self.fps

    def raise_for_error(self) -> None:
        """Raise the render failure, if there was one."""
        if self.failure is not None:
            raise self.failure
        if not self.success:
            raise RenderFailed(self.error.message if self.error else "Render failed")
