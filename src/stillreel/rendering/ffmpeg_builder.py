"""FFmpeg command construction for raw-frame encoding."""

from pathlib import Path

from stillreel.config import Settings, get_settings
from stillreel.models.errors import UnsupportedConfiguration
from stillreel.models.render import RenderSettings, VideoCodec

# Pixel layout of the frame buffers piped to the encoder.
INPUT_PIXEL_FORMAT = "bgra"

CODEC_ENCODERS = {
    VideoCodec.H264: "libx264",
    VideoCodec.HEVC: "libx265",
    VideoCodec.MPEG4: "mpeg4",
}

CONTAINER_CODECS = {
    "mp4": {VideoCodec.H264, VideoCodec.HEVC, VideoCodec.MPEG4},
    "m4v": {VideoCodec.H264, VideoCodec.HEVC, VideoCodec.MPEG4},
    "mov": {VideoCodec.H264, VideoCodec.HEVC, VideoCodec.MPEG4},
    "mkv": {VideoCodec.H264, VideoCodec.HEVC, VideoCodec.MPEG4},
}

MAX_DIMENSION = 8192


class FFmpegCommandBuilder:
    """Builds FFmpeg command lines for the encoder sink."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def validate(self, render: RenderSettings) -> None:
        """Raise UnsupportedConfiguration unless ``render`` can be encoded."""
        ext = render.video_filename_ext
        if ext not in CONTAINER_CODECS:
            raise UnsupportedConfiguration(
                f"Unsupported container: .{ext}. Allowed: {sorted(CONTAINER_CODECS)}",
                details={"extension": ext},
            )
        if render.codec not in CONTAINER_CODECS[ext]:
            raise UnsupportedConfiguration(
                f"Codec {render.codec} cannot be stored in .{ext}",
                details={"codec": str(render.codec), "extension": ext},
            )
        if render.width > MAX_DIMENSION or render.height > MAX_DIMENSION:
            raise UnsupportedConfiguration(
                f"Frame size {render.width}x{render.height} exceeds {MAX_DIMENSION}px",
                details={"width": render.width, "height": render.height},
            )
        if self._is_chroma_subsampled() and (render.width % 2 or render.height % 2):
            raise UnsupportedConfiguration(
                f"{self.settings.output_pixel_format} output requires even dimensions, "
                f"got {render.width}x{render.height}",
                details={"width": render.width, "height": render.height},
            )

    def build_encode_command(self, render: RenderSettings, output_path: Path) -> list[str]:
        """Build the command that encodes raw BGRA frames read from stdin."""
        cmd = [
            self.settings.ffmpeg_binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-stats",
            "-n",
            "-f",
            "rawvideo",
            "-pix_fmt",
            INPUT_PIXEL_FORMAT,
            "-video_size",
            f"{render.width}x{render.height}",
            "-framerate",
            str(render.fps),
            "-i",
            "pipe:0",
            "-an",
            "-c:v",
            CODEC_ENCODERS[render.codec],
        ]
        cmd.extend(self.build_codec_args(render))
        cmd.extend(["-pix_fmt", self.settings.output_pixel_format, "-r", str(render.fps)])
        if render.video_filename_ext in ("mp4", "m4v", "mov"):
            cmd.extend(["-movflags", "+faststart"])
        cmd.append(str(output_path))
        return cmd

    def build_codec_args(self, render: RenderSettings) -> list[str]:
        """Codec specific quality arguments."""
        if render.codec in (VideoCodec.H264, VideoCodec.HEVC):
            args = ["-crf", str(self.settings.output_crf), "-preset", self.settings.output_preset]
            if render.codec == VideoCodec.HEVC and render.video_filename_ext != "mkv":
                # Players on Apple platforms only accept the hvc1 tag.
                args.extend(["-tag:v", "hvc1"])
            return args
        return ["-q:v", "3"]

    def build_probe_command(self, path: Path) -> list[str]:
        """Build an ffprobe command that counts the frames of the first video stream."""
        return [
            self.settings.ffprobe_binary,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-select_streams",
            "v:0",
            "-count_frames",
            "-show_format",
            "-show_streams",
            str(path),
        ]

    def _is_chroma_subsampled(self) -> bool:
        return self.settings.output_pixel_format.startswith(("yuv420", "nv12"))
