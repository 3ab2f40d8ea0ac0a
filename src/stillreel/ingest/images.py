"""Source image loading and pixel format normalization using OpenCV."""

from pathlib import Path

import cv2
import numpy as np

ImageSource = np.ndarray | Path | str

IMAGE_EXTENSIONS = ["png", "jpg", "jpeg", "bmp", "tif", "tiff", "webp"]


def load_image(source: ImageSource) -> np.ndarray:
    """Return the pixels of ``source``, reading it from disk if it is a path."""
    if isinstance(source, np.ndarray):
        return source
    path = Path(source)
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError(f"Cannot read image: {path}")
    return image


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Convert 16-bit and floating point images to 8 bits per channel."""
    if image.dtype == np.uint8:
        return image
    if image.dtype == np.uint16:
        return (image >> 8).astype(np.uint8)
    if np.issubdtype(image.dtype, np.floating):
        return (np.clip(image, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
    raise ValueError(f"Unsupported image dtype: {image.dtype}")


def to_bgra(image: np.ndarray) -> np.ndarray:
    """Normalize grayscale, BGR and BGRA images to premultiplied 8-bit BGRA."""
    image = np.ascontiguousarray(to_uint8(image))
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.ndim != 3:
        raise ValueError(f"Unsupported image shape: {image.shape}")

    channels = image.shape[2]
    if channels == 1:
        return cv2.cvtColor(np.ascontiguousarray(image[:, :, 0]), cv2.COLOR_GRAY2BGRA)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    if channels == 4:
        alpha = image[:, :, 3]
        if np.all(alpha == 255):
            return image
        premultiplied = image.astype(np.uint16)
        premultiplied[:, :, :3] = premultiplied[:, :, :3] * alpha[:, :, None] // 255
        return premultiplied.astype(np.uint8)
    raise ValueError(f"Unsupported channel count: {channels}")


def image_size(image: np.ndarray) -> tuple[int, int]:
    """Return (width, height) of an image array."""
    return int(image.shape[1]), int(image.shape[0])


def list_image_files(directory: Path, extensions: list[str] | None = None) -> list[Path]:
    """List image files in ``directory`` sorted by name."""
    allowed = {ext.lower() for ext in (extensions or IMAGE_EXTENSIONS)}
    if not directory.is_dir():
        raise ValueError(f"Not a directory: {directory}")
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lstrip(".").lower() in allowed
    )
