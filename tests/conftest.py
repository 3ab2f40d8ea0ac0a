"""Shared test fixtures, fake encoder processes and test image generators."""

import io
import subprocess
import threading
from pathlib import Path

import numpy as np
import pytest

from stillreel.config import Settings
from stillreel.rendering.buffer_pool import FrameBufferPool


@pytest.fixture
def config(tmp_path):
    """Settings pointing the cache directory into the test's tmp_path."""
    return Settings(
        cache_dir=tmp_path / "cache",
        max_pending_frames=2,
        finalize_timeout_seconds=10.0,
    )


@pytest.fixture
def fake_encoder():
    """Process factory producing in-memory encoder processes."""
    return FakeEncoderFactory()


def solid_image(width: int, height: int, color: tuple[int, int, int]) -> np.ndarray:
    """Create a uniform BGR image."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    return image


def distinct_colors(n: int) -> list[tuple[int, int, int]]:
    """Return ``n`` distinct BGR colors."""
    return [((i * 37) % 256, (i * 91 + 50) % 256, (255 - i * 13) % 256) for i in range(n)]


class FakeStdin:
    """Binary pipe stand-in that records every chunk written to it."""

    def __init__(self, process: "FakeEncoderProcess"):
        self.process = process
        self.chunks: list[bytes] = []
        self.closed = False
        self.writing = threading.Event()

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed file")
        self.writing.set()
        gate = self.process.write_gate
        if gate is not None:
            gate.wait(timeout=10)
        if self.process.killed or (
            self.process.broken_after is not None
            and len(self.chunks) >= self.process.broken_after
        ):
            raise BrokenPipeError(32, "Broken pipe")
        chunk = bytes(data)
        self.chunks.append(chunk)
        return len(chunk)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.process.input_closed()


class FakeEncoderProcess:
    """Popen stand-in that "encodes" by concatenating the raw frames it receives."""

    pid = 4242

    def __init__(
        self,
        args: list[str],
        exit_code: int = 0,
        create_output: bool = True,
        broken_after: int | None = None,
        write_gate: threading.Event | None = None,
        stderr: bytes = b"",
    ):
        self.args = args
        self.output_path = Path(args[-1])
        self.exit_code = exit_code
        self.create_output = create_output
        self.broken_after = broken_after
        self.write_gate = write_gate
        self.stdin = FakeStdin(self)
        self.stderr = io.BytesIO(stderr)
        self.returncode: int | None = None
        self.killed = False
        self._exited = threading.Event()

    @property
    def frames(self) -> list[bytes]:
        return self.stdin.chunks

    def input_closed(self) -> None:
        if self.killed:
            return
        if self.create_output:
            self.output_path.write_bytes(b"".join(self.stdin.chunks) or b"\x00")
        self.returncode = self.exit_code
        self._exited.set()

    def poll(self) -> int | None:
        return self.returncode if self._exited.is_set() else None

    def wait(self, timeout: float | None = None) -> int:
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9
        self._exited.set()
        if self.write_gate is not None:
            self.write_gate.set()


class FakeEncoderFactory:
    """Callable used as ``process_factory``; keeps every process it created."""

    def __init__(self, **options):
        self.options = options
        self.processes: list[FakeEncoderProcess] = []

    def __call__(self, args: list[str], **kwargs) -> FakeEncoderProcess:
        process = FakeEncoderProcess(args, **self.options)
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeEncoderProcess:
        return self.processes[-1]


class ScriptedSink:
    """Synchronous encoder sink whose readiness and append results are scripted.

    ``readiness`` is consumed one value per ``is_ready()`` query and defaults
    to True once exhausted. ``reject`` holds the (0-based) append calls that
    return False.
    """

    def __init__(self, readiness: list[bool] | None = None, reject: set[int] | None = None):
        self.readiness = list(readiness or [])
        self.reject = set(reject or ())
        self.appended: list[tuple[np.ndarray, object]] = []
        self.append_calls = 0
        self.is_ready_calls = 0
        self.appends_per_signal: list[int] = []
        self.output_path: Path | None = None
        self.builder = None
        self.pool: FrameBufferPool | None = None
        self.existed_at_prepare: bool | None = None
        self.finished = False
        self._pull = None

    def prepare(self, settings, progress_monitor=None) -> None:
        self.output_path = settings.output_path
        self.existed_at_prepare = self.output_path.exists()
        self.pool = FrameBufferPool(settings.width, settings.height, capacity=2)

    def request_media_data_when_ready(self, pull, on_error) -> None:
        self._pull = pull
        self.signal_ready()

    def signal_ready(self) -> None:
        if self.finished:
            return
        before = self.append_calls
        self._pull()
        self.appends_per_signal.append(self.append_calls - before)

    def is_ready(self) -> bool:
        self.is_ready_calls += 1
        return self.readiness.pop(0) if self.readiness else True

    def append(self, buffer, presentation_time) -> bool:
        call = self.append_calls
        self.append_calls += 1
        if call in self.reject:
            self.pool.release(buffer)
            return False
        self.appended.append((buffer.pixels.copy(), presentation_time))
        self.pool.release(buffer)
        return True

    def finish(self, on_complete) -> None:
        self.finished = True
        on_complete(None)

    def cancel(self) -> bool:
        return False
