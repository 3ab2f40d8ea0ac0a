"""Inspect a rendered video with ffprobe."""

import json
import subprocess
from pathlib import Path

from pydantic import BaseModel, Field

from stillreel.models.errors import FinalizationError
from stillreel.rendering.ffmpeg_builder import FFmpegCommandBuilder


class VideoProbe(BaseModel):
    """Summary of the first video stream of a file."""

    output_path: str
    codec_name: str = Field(default="")
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    frame_count: int = Field(default=0, ge=0)
    fps: float = Field(default=0.0, ge=0)
    duration: float = Field(default=0.0, ge=0)
    file_size_bytes: int = Field(default=0, ge=0)


def parse_frame_rate(value: str) -> float:
    """Parse an ffprobe rational such as ``"6/1"``."""
    if "/" in value:
        num, den = value.split("/", 1)
        return int(num) / int(den) if int(den) > 0 else 0.0
    return float(value or 0)


def probe_video(path: Path, builder: FFmpegCommandBuilder | None = None) -> VideoProbe:
    """Run ffprobe on ``path`` and count the frames of its video stream."""
    if not path.exists():
        raise FinalizationError(f"File not found: {path}", details={"output": str(path)})

    builder = builder or FFmpegCommandBuilder()
    try:
        result = subprocess.run(
            builder.build_probe_command(path),
            capture_output=True,
            text=True,
            timeout=60,
        )
        probe = json.loads(result.stdout)
    except FileNotFoundError:
        raise FinalizationError(
            "ffprobe not found. Please install FFmpeg.",
            details={"command": builder.settings.ffprobe_binary},
        )
    except subprocess.TimeoutExpired:
        raise FinalizationError("ffprobe timed out", details={"output": str(path)})
    except json.JSONDecodeError:
        raise FinalizationError("Failed to parse ffprobe output", details={"output": str(path)})

    streams = probe.get("streams", [])
    if result.returncode != 0 or not streams:
        raise FinalizationError(
            "No video stream found in output",
            details={"output": str(path), "stderr": result.stderr[:500]},
        )

    stream = streams[0]
    fmt = probe.get("format", {})
    frames = stream.get("nb_read_frames") or stream.get("nb_frames") or 0
    return VideoProbe(
        output_path=str(path),
        codec_name=stream.get("codec_name", ""),
        width=int(stream.get("width", 0)),
        height=int(stream.get("height", 0)),
        frame_count=int(frames),
        fps=parse_frame_rate(str(stream.get("r_frame_rate", "0/1"))),
        duration=float(fmt.get("duration", 0) or 0),
        file_size_bytes=int(fmt.get("size", 0) or 0),
    )
