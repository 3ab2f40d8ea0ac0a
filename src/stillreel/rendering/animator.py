"""Frame supply coordinator: turns a queue of still images into a paced video."""

import asyncio
import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import Executor

from stillreel.config import Settings, get_settings
from stillreel.ingest.images import ImageSource
from stillreel.models.errors import (
    EncoderWriteError,
    ErrorDetail,
    FinalizationError,
    RenderFailed,
    StillreelError,
)
from stillreel.models.render import RenderOutcome, RenderSettings
from stillreel.models.timing import MediaTime, frame_duration
from stillreel.rendering.encoder import EncoderSink
from stillreel.rendering.probe import probe_video
from stillreel.rendering.progress import FFmpegProgressMonitor
from stillreel.rendering.rasterizer import FrameBufferFactory
from stillreel.storage.output_store import remove_file_at

logger = logging.getLogger(__name__)

OutcomeHandler = Callable[[RenderOutcome], None]


class FrameSupplyCoordinator:
    """Supplies queued images to an encoder sink whenever the sink asks for more.

    A coordinator performs one render. Once ``render`` has returned, the
    pending queue and the frame index are only touched from the sink's
    producer thread, and the caller must not mutate the image sequence.
    """

    def __init__(
        self,
        sink: EncoderSink | None = None,
        rasterizer: FrameBufferFactory | None = None,
        settings: Settings | None = None,
        completion_executor: Executor | None = None,
    ):
        self.config = settings or get_settings()
        self.sink = sink or EncoderSink(self.config, completion_executor=completion_executor)
        self.rasterizer = rasterizer or FrameBufferFactory()
        self.render_settings: RenderSettings | None = None
        self.frame_index = 0
        self._pending: deque[ImageSource] = deque()
        self._frame_duration: MediaTime | None = None
        self._on_complete: OutcomeHandler | None = None
        self._started = False

    def presentation_time(self, frame_index: int) -> MediaTime:
        """Timestamp of frame ``frame_index``; the first frame is at zero."""
        return self._frame_duration * frame_index

    def render(
        self,
        images: Iterable[ImageSource],
        settings: RenderSettings,
        on_complete: OutcomeHandler,
        progress_callback: Callable[[float], None] | None = None,
    ) -> None:
        """Start rendering ``images`` to ``settings.output_path``.

        Setup errors raise RenderFailed here. Everything after setup is
        reported through ``on_complete``, which is called exactly once on the
        sink's completion executor. ``progress_callback`` runs on the encoder's
        stderr reader thread.
        """
        if self._started:
            raise RenderFailed("This coordinator has already rendered; create a new one to retry")
        self._started = True

        output_path = settings.output_path
        remove_file_at(output_path)

        self.render_settings = settings
        self._pending = deque(images)
        self._frame_duration = frame_duration(settings.fps)
        self._on_complete = on_complete
        total = len(self._pending)
        monitor = FFmpegProgressMonitor(total, progress_callback) if progress_callback else None

        logger.info("Rendering %d images to %s", total, output_path)
        try:
            self.sink.prepare(settings, progress_monitor=monitor)
        except StillreelError as e:
            raise RenderFailed(
                f"Encoder setup failed: {e.message}",
                details={"cause": type(e).__name__, **e.details},
            ) from e
        self.sink.request_media_data_when_ready(self._supply_frames, self._on_sink_finished)

    def render_sync(
        self,
        images: Iterable[ImageSource],
        settings: RenderSettings,
        timeout: float | None = None,
        progress_callback: Callable[[float], None] | None = None,
    ) -> RenderOutcome:
        """Render and block until the output is finalized. Raises RenderFailed on failure."""
        done = threading.Event()
        outcomes: list[RenderOutcome] = []

        def on_complete(outcome: RenderOutcome) -> None:
            outcomes.append(outcome)
            done.set()

        self.render(images, settings, on_complete, progress_callback)
        if not done.wait(timeout):
            self.cancel()
            raise RenderFailed(
                f"Render did not complete within {timeout}s",
                details={"frames": self.frame_index},
            )
        outcome = outcomes[0]
        outcome.raise_for_error()
        return outcome

    async def render_async(
        self,
        images: Iterable[ImageSource],
        settings: RenderSettings,
        progress_callback: Callable[[float], None] | None = None,
    ) -> RenderOutcome:
        """Render and resolve with the outcome on the running event loop."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[RenderOutcome] = loop.create_future()

        def resolve(outcome: RenderOutcome) -> None:
            if not future.done():
                future.set_result(outcome)

        self.render(
            images,
            settings,
            lambda outcome: loop.call_soon_threadsafe(resolve, outcome),
            progress_callback,
        )
        return await future

    def cancel(self) -> bool:
        """Abort a running render. The completion callback reports RenderCancelled."""
        return self.sink.cancel()

    def _supply_frames(self) -> None:
        # Producer thread only. A frame leaves the queue only once the sink
        # has accepted it, so a rejected append is retried on the next signal.
        while self._pending:
            if not self.sink.is_ready():
                return
            presentation_time = self.presentation_time(self.frame_index)
            buffer = self.rasterizer.rasterize(
                self._pending[0], self.sink.pool, self.render_settings.size
            )
            if not self.sink.append(buffer, presentation_time):
                logger.debug("Sink deferred frame %d; waiting for readiness", self.frame_index)
                return
            self._pending.popleft()
            self.frame_index += 1

        self.sink.finish(self._on_sink_finished)

    def _on_sink_finished(self, error: StillreelError | None) -> None:
        if error is None and self.config.verify_output:
            error = self._verify_output()

        outcome = self._build_outcome(error)
        if outcome.success:
            logger.info("Rendered %d frames to %s", outcome.frames_written, outcome.output_path)
        else:
            logger.error("Render of %s failed: %s", outcome.output_path, outcome.error.message)
        self._on_complete(outcome)

    def _verify_output(self) -> FinalizationError | None:
        try:
            probe = probe_video(self.sink.output_path, self.sink.builder)
        except FinalizationError as e:
            return e
        if probe.frame_count != self.frame_index:
            return FinalizationError(
                f"Output has {probe.frame_count} frames, expected {self.frame_index}",
                details={"frames": probe.frame_count, "expected": self.frame_index},
            )
        return None

    def _build_outcome(self, error: StillreelError | None) -> RenderOutcome:
        output_path = str(self.sink.output_path or self.render_settings.output_path)
        if error is None:
            return RenderOutcome(
                success=True,
                output_path=output_path,
                frames_written=self.frame_index,
                fps=self.render_settings.fps,
            )

        failure = RenderFailed(
            f"Render failed: {error.message}",
            details={"cause": type(error).__name__, **error.details},
        )
        failure.__cause__ = error
        return RenderOutcome(
            success=False,
            output_path=output_path,
            frames_written=self.frame_index,
            fps=self.render_settings.fps,
            error=ErrorDetail.from_exception(
                failure, retry=isinstance(error, (EncoderWriteError, FinalizationError))
            ),
            failure=failure,
        )


def render_images(
    images: Iterable[ImageSource],
    settings: RenderSettings,
    timeout: float | None = None,
) -> RenderOutcome:
    """Render ``images`` with a fresh coordinator and sink, blocking until done."""
    return FrameSupplyCoordinator().render_sync(images, settings, timeout=timeout)
