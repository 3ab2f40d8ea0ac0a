"""Encoder sink: feeds frame buffers to an FFmpeg process on the encoder's schedule."""

import io
import logging
import os
import subprocess
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path

from stillreel.config import Settings, get_settings
from stillreel.models.errors import (
    AppendAfterNotReady,
    EncoderError,
    EncoderWriteError,
    FinalizationError,
    RenderCancelled,
    SinkCreationError,
    StillreelError,
    TimestampOrderError,
)
from stillreel.models.render import EncoderState, RenderSettings
from stillreel.models.timing import ZERO, MediaTime, frame_duration
from stillreel.rendering.buffer_pool import FrameBuffer, FrameBufferPool
from stillreel.rendering.ffmpeg_builder import FFmpegCommandBuilder
from stillreel.rendering.progress import FFmpegProgressMonitor
from stillreel.storage.output_store import remove_file_at

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[StillreelError | None], None]


class EncoderSink:
    """Wraps an FFmpeg encoder process behind a readiness-driven append interface.

    Appended frames wait in a queue of at most ``max_pending_frames`` buffers
    until the writer thread pipes them into the encoder's stdin. The sink is
    ready while that queue has room. Every frame the writer takes off the
    queue is a readiness signal that re-invokes the pull callback on the
    producer thread, so the callback is never polled and never reentrant.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        completion_executor: Executor | None = None,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
        builder: FFmpegCommandBuilder | None = None,
    ):
        self.config = settings or get_settings()
        self.builder = builder or FFmpegCommandBuilder(self.config)
        self.max_pending_frames = self.config.max_pending_frames
        self._process_factory = process_factory
        self._completion_executor = completion_executor
        self._owns_executor = completion_executor is None

        self.state = EncoderState.IDLE
        self.render_settings: RenderSettings | None = None
        self.output_path: Path | None = None
        self.session_start: MediaTime = ZERO
        self.frames_appended = 0
        self.frames_written = 0

        self._cond = threading.Condition()
        self._pending: deque[FrameBuffer] = deque()
        self._pool: FrameBufferPool | None = None
        self._process: subprocess.Popen | None = None
        self._frame_duration: MediaTime | None = None
        self._progress_monitor: FFmpegProgressMonitor | None = None
        self._stderr_tail: deque[str] = deque(maxlen=self.config.stderr_tail_lines)
        self._stderr_thread: threading.Thread | None = None

        self._pull: Callable[[], None] | None = None
        self._on_error: CompletionHandler | None = None
        self._on_complete: CompletionHandler | None = None
        self._ready_generation = 0
        self._producer_ident: int | None = None
        self._in_pull = False
        self._in_write = False
        self._input_finished = False
        self._stop_producer = False
        self._completion_dispatched = False

    @property
    def pool(self) -> FrameBufferPool:
        if self._pool is None:
            raise EncoderError("Encoder sink has no buffer pool; call prepare() first")
        return self._pool

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    # --- Session setup ---

    def prepare(
        self,
        settings: RenderSettings,
        progress_monitor: FFmpegProgressMonitor | None = None,
    ) -> None:
        """Validate ``settings``, allocate the buffer pool and start the encoder.

        The output location must be free; callers remove any previous file first.
        """
        with self._cond:
            if self.state != EncoderState.IDLE:
                raise SinkCreationError(
                    f"Encoder sink is already {self.state}; use a new sink for each render",
                    details={"state": str(self.state)},
                )

        try:
            self._open_session(settings, progress_monitor)
        except StillreelError:
            with self._cond:
                self.state = EncoderState.FAILED
            if self._process is not None and self._process.poll() is None:
                self._process.kill()
            raise

        with self._cond:
            self.state = EncoderState.PREPARED
        logger.info(
            "Prepared encoder for %s (%dx%d @ %d fps, %s)",
            self.output_path,
            settings.width,
            settings.height,
            settings.fps,
            settings.codec,
        )

    def _open_session(
        self, settings: RenderSettings, progress_monitor: FFmpegProgressMonitor | None
    ) -> None:
        self.builder.validate(settings)

        output_path = settings.output_path
        if output_path.exists():
            raise SinkCreationError(
                f"Output location is already occupied: {output_path}",
                details={"output": str(output_path)},
            )
        if not os.access(output_path.parent, os.W_OK):
            raise SinkCreationError(
                f"Output directory is not writable: {output_path.parent}",
                details={"directory": str(output_path.parent)},
            )

        cmd = self.builder.build_encode_command(settings, output_path)
        try:
            self._process = self._process_factory(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            raise SinkCreationError(
                "FFmpeg not found. Please install FFmpeg.",
                details={"command": cmd[0]},
            )
        except OSError as e:
            raise SinkCreationError(
                f"Cannot start encoder: {e}",
                details={"command": cmd[0], "error": str(e)},
            )

        self.render_settings = settings
        self.output_path = output_path
        self._frame_duration = frame_duration(settings.fps)
        self._progress_monitor = progress_monitor
        self._pool = FrameBufferPool(
            settings.width, settings.height, capacity=self.max_pending_frames + 2
        )
        self._stderr_thread = self._start_thread(self._read_stderr, "stillreel-encoder-stderr")
        self._start_thread(self._run_writer, "stillreel-encoder-writer")

    def request_media_data_when_ready(
        self, pull: Callable[[], None], on_error: CompletionHandler
    ) -> None:
        """Begin the writing session.

        ``pull`` runs on the producer thread each time the sink signals
        readiness, starting immediately. It should append frames until the
        sink stops being ready, or call :meth:`finish`. ``on_error`` receives
        any failure that happens before :meth:`finish` is called.
        """
        with self._cond:
            if self.state != EncoderState.PREPARED:
                raise EncoderError(
                    f"Cannot begin a writing session while the sink is {self.state}",
                    details={"state": str(self.state)},
                )
            self._pull = pull
            self._on_error = on_error
            self.state = EncoderState.WRITING
            self._ready_generation += 1
        self._start_thread(self._run_producer, "stillreel-media-input")
        logger.info("Began writing session at %s", self.session_start.seconds)

    # --- Steady state ---

    def is_ready(self) -> bool:
        """Whether the sink accepts another frame right now."""
        with self._cond:
            return self._is_ready_locked()

    def append(self, buffer: FrameBuffer, presentation_time: MediaTime) -> bool:
        """Hand ``buffer`` to the encoder at ``presentation_time``.

        The sink owns ``buffer`` after this call on every path. Returns False
        when the queue is momentarily full; the buffer then goes back to the
        pool and the frame should be supplied again on the next readiness
        signal.
        """
        with self._cond:
            if self.state != EncoderState.WRITING:
                error = AppendAfterNotReady(
                    f"Cannot append while the sink is {self.state}",
                    details={"state": str(self.state)},
                )
            elif len(self._pending) >= self.max_pending_frames:
                error = None
            else:
                expected = self._frame_duration * self.frames_appended
                if presentation_time == expected:
                    self.pool.mark_encoding(buffer)
                    self._pending.append(buffer)
                    self.frames_appended += 1
                    self._cond.notify_all()
                    return True
                error = TimestampOrderError(
                    f"Expected frame {self.frames_appended} at {expected.value}/"
                    f"{expected.timescale}, got {presentation_time.value}/"
                    f"{presentation_time.timescale}",
                    details={"frame": self.frames_appended},
                )

        if self._pool is not None:
            self._pool.release(buffer)
        if error is not None:
            raise error
        logger.debug("Encoder queue full, deferring frame at %ss", presentation_time.seconds)
        return False

    def finish(self, on_complete: CompletionHandler) -> None:
        """Mark the input finished and finalize the output asynchronously.

        ``on_complete`` is called exactly once on the completion executor, with
        None on success or the error that failed the session.
        """
        with self._cond:
            if self.state not in (EncoderState.PREPARED, EncoderState.WRITING):
                raise EncoderError(
                    f"Cannot finish a session that is {self.state}",
                    details={"state": str(self.state)},
                )
            self._on_complete = on_complete
            self.state = EncoderState.FINISHING
            self._input_finished = True
            self._stop_producer = True
            self._cond.notify_all()
        logger.info(
            "Input finished after %d frames; finalizing %s", self.frames_appended, self.output_path
        )

    def cancel(self) -> bool:
        """Abort the session, remove the partial output and release the pool."""
        with self._cond:
            if self.state == EncoderState.IDLE or self.state.is_terminal:
                return False
        self._fail(RenderCancelled("Render cancelled", details={"frames": self.frames_appended}))
        return True

    # --- Worker threads ---

    def _is_ready_locked(self) -> bool:
        return self.state == EncoderState.WRITING and len(self._pending) < self.max_pending_frames

    def _start_thread(self, target: Callable[[], None], name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        return thread

    def _run_producer(self) -> None:
        self._producer_ident = threading.get_ident()
        seen = 0

        def signalled() -> bool:
            return self._stop_producer or (
                self._ready_generation != seen and self._is_ready_locked()
            )

        while True:
            with self._cond:
                self._cond.wait_for(signalled)
                if self._stop_producer:
                    return
                seen = self._ready_generation
                self._in_pull = True
            try:
                self._pull()
            except Exception as e:
                ended = self._end_pull()
                if ended:
                    logger.debug("Frame supply stopped after the session ended: %s", e)
                elif isinstance(e, StillreelError):
                    logger.error("Frame supply failed: %s", e.message)
                else:
                    logger.exception("Frame supply failed")
                if isinstance(e, StillreelError):
                    self._fail(e)
                else:
                    self._fail(EncoderError(f"Frame supply failed: {e}", details={"error": str(e)}))
                return
            self._end_pull()

    def _end_pull(self) -> bool:
        """Mark the pull callback as returned; reports whether the session had already ended."""
        with self._cond:
            self._in_pull = False
            self._cond.notify_all()
            return self.state.is_terminal

    def _run_writer(self) -> None:
        drained = False
        while True:
            with self._cond:
                self._cond.wait_for(
                    lambda: self._pending
                    or self._input_finished
                    or self.state == EncoderState.FAILED
                )
                if self.state == EncoderState.FAILED:
                    break
                if not self._pending:
                    drained = True
                    break
                buffer = self._pending.popleft()
                self._in_write = True
                self._ready_generation += 1
                self._cond.notify_all()

            error = None
            try:
                self._process.stdin.write(buffer.pixels.data)
            except (OSError, ValueError) as e:
                error = EncoderWriteError(
                    f"Encoder stopped accepting frames: {e}",
                    details={"stderr": self.stderr_tail},
                )
            self.pool.release(buffer)
            with self._cond:
                self._in_write = False
                if error is None:
                    self.frames_written += 1
                self._cond.notify_all()
            if error is not None:
                self._fail(error)
                break

        if drained:
            self._finalize()
        else:
            self._close_stdin()

    def _finalize(self) -> None:
        try:
            self._process.stdin.close()
        except OSError as e:
            self._fail(
                FinalizationError(
                    f"Encoder exited before input was finished: {e}",
                    details={"stderr": self.stderr_tail},
                )
            )
            return

        try:
            returncode = self._process.wait(timeout=self.config.finalize_timeout_seconds)
        except subprocess.TimeoutExpired:
            self._fail(
                FinalizationError(
                    f"Encoder did not finish within {self.config.finalize_timeout_seconds}s",
                    details={"stderr": self.stderr_tail},
                )
            )
            return

        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)

        if returncode != 0:
            self._fail(
                FinalizationError(
                    f"FFmpeg exited with code {returncode}",
                    details={"returncode": returncode, "stderr": self.stderr_tail},
                )
            )
            return
        if not self.output_path.exists():
            self._fail(
                FinalizationError(
                    "Output file was not created",
                    details={"output": str(self.output_path)},
                )
            )
            return

        with self._cond:
            if self.state.is_terminal:
                return
            self.state = EncoderState.FINISHED
        self.pool.close()
        if self._progress_monitor:
            self._progress_monitor.complete()
        logger.info("Finished writing %d frames to %s", self.frames_written, self.output_path)
        self._dispatch(None)

    def _read_stderr(self) -> None:
        stream = io.TextIOWrapper(
            self._process.stderr, encoding="utf-8", errors="replace", newline=None
        )
        for line in stream:
            line = line.strip()
            if not line:
                continue
            self._stderr_tail.append(line)
            if self._progress_monitor:
                self._progress_monitor.parse_line(line)

    def _close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.closed:
            return
        try:
            stdin.close()
        except OSError as e:
            logger.debug("Ignoring error while closing encoder input: %s", e)

    # --- Failure and completion ---

    def _fail(self, error: StillreelError) -> None:
        with self._cond:
            if self.state.is_terminal:
                return
            previous = self.state
            self.state = EncoderState.FAILED
            self._stop_producer = True
            dropped = list(self._pending)
            self._pending.clear()
            self._cond.notify_all()

        log = logger.info if isinstance(error, RenderCancelled) else logger.error
        log("Encoder session failed while %s: %s", previous, error.message)
        if error.details.get("stderr"):
            log("FFmpeg stderr:\n%s", error.details["stderr"])

        for buffer in dropped:
            self.pool.release(buffer)

        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning("Encoder process %s did not exit after kill", self._process.pid)
        self._wait_for_workers()
        if self._pool is not None:
            self._pool.close()
        if self.output_path is not None:
            remove_file_at(self.output_path)

        self._dispatch(error)

    def _wait_for_workers(self) -> None:
        """Block until no pull callback or pipe write still holds a frame buffer."""
        on_producer = threading.get_ident() == self._producer_ident

        def idle() -> bool:
            return not self._in_write and (on_producer or not self._in_pull)

        with self._cond:
            if not self._cond.wait_for(idle, timeout=self.config.finalize_timeout_seconds):
                logger.warning(
                    "Encoder workers still busy after %ss; %d frame buffers outstanding",
                    self.config.finalize_timeout_seconds,
                    self._pool.in_use if self._pool is not None else 0,
                )

    def _dispatch(self, error: StillreelError | None) -> None:
        with self._cond:
            if self._completion_dispatched:
                return
            self._completion_dispatched = True
            handler = self._on_complete or self._on_error

        if handler is None:
            logger.warning("No completion handler registered; dropping %r", error)
            return

        executor = self._completion_executor
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stillreel-completion")
        executor.submit(self._invoke_handler, handler, error)
        if self._owns_executor:
            executor.shutdown(wait=False)

    @staticmethod
    def _invoke_handler(handler: CompletionHandler, error: StillreelError | None) -> None:
        try:
            handler(error)
        except Exception:
            logger.exception("Completion handler raised")
