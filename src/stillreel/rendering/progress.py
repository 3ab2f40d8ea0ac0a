"""FFmpeg progress monitoring."""

import re
from collections.abc import Callable

_FRAME_PATTERN = re.compile(r"frame=\s*(\d+)")


class FFmpegProgressMonitor:
    """Monitor encoding progress from the ``frame=`` counter in FFmpeg stderr."""

    def __init__(self, total_frames: int, callback: Callable[[float], None] | None = None):
        self.total_frames = total_frames
        self.callback = callback
        self.frames_encoded = 0

    def parse_line(self, line: str) -> float | None:
        """Parse an FFmpeg stderr line for frame= progress."""
        match = _FRAME_PATTERN.search(line)
        if match:
            self.frames_encoded = int(match.group(1))
            progress = self.progress
            if self.callback:
                self.callback(progress)
            return progress
        return None

    def complete(self) -> None:
        """Report 100% once the output has been finalized."""
        self.frames_encoded = max(self.frames_encoded, self.total_frames)
        if self.callback:
            self.callback(1.0)

    @property
    def progress(self) -> float:
        """Current progress as fraction [0, 1]."""
        if self.total_frames <= 0:
            return 0.0
        return min(1.0, self.frames_encoded / self.total_frames)
