"""Rasterize source images into pooled frame buffers (scale-to-fit, centered)."""

from typing import NamedTuple

import cv2
import numpy as np

from stillreel.ingest.images import ImageSource, image_size, load_image, to_bgra
from stillreel.rendering.buffer_pool import FrameBuffer, FrameBufferPool

# Transparent black, composited to black by the encoder.
NEUTRAL_FILL = 0


class FitRect(NamedTuple):
    """Placement of a scaled source image inside the target frame."""

    x: int
    y: int
    width: int
    height: int
    scale: float


def compute_fit_rect(source_size: tuple[int, int], target_size: tuple[int, int]) -> FitRect:
    """Aspect-preserving scale-to-fit of ``source_size`` centered in ``target_size``.

    The scaled image never exceeds the target on either axis, so the result
    letterboxes and never crops. Odd margins put the extra pixel after the image.
    """
    src_w, src_h = source_size
    dst_w, dst_h = target_size
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Source size must be positive, got {src_w}x{src_h}")
    if dst_w <= 0 or dst_h <= 0:
        raise ValueError(f"Target size must be positive, got {dst_w}x{dst_h}")

    scale = min(dst_w / src_w, dst_h / src_h)
    width = min(dst_w, max(1, round(src_w * scale)))
    height = min(dst_h, max(1, round(src_h * scale)))
    x = (dst_w - width) // 2 if width < dst_w else 0
    y = (dst_h - height) // 2 if height < dst_h else 0
    return FitRect(x=x, y=y, width=width, height=height, scale=scale)


class FrameBufferFactory:
    """Turns one source image into one filled frame buffer."""

    def rasterize(
        self,
        image: ImageSource,
        pool: FrameBufferPool,
        target_size: tuple[int, int],
    ) -> FrameBuffer:
        """Acquire a buffer from ``pool`` and draw ``image`` into it.

        The buffer is returned to the pool if drawing fails.
        """
        if tuple(target_size) != pool.size:
            raise ValueError(f"Target size {target_size} does not match pool size {pool.size}")

        with pool.borrow() as buffer:
            self.draw(image, buffer.pixels)
        return buffer

    def draw(self, image: ImageSource, pixels: np.ndarray) -> FitRect:
        """Clear ``pixels`` and draw ``image`` scaled to fit and centered."""
        pixels.fill(NEUTRAL_FILL)
        source = to_bgra(load_image(image))
        target_size = (pixels.shape[1], pixels.shape[0])
        rect = compute_fit_rect(image_size(source), target_size)

        if (rect.width, rect.height) != image_size(source):
            interpolation = cv2.INTER_AREA if rect.scale < 1 else cv2.INTER_LINEAR
            source = cv2.resize(source, (rect.width, rect.height), interpolation=interpolation)

        pixels[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width] = source
        return rect
