"""Output file location management."""

import logging
from pathlib import Path

from stillreel.config import get_settings
from stillreel.models.errors import PathResolutionError

logger = logging.getLogger(__name__)


def resolve_output_dir(directory: Path | None = None) -> Path:
    """Create (if needed) and resolve the directory rendered videos are written to."""
    base = Path(directory) if directory is not None else get_settings().cache_dir
    try:
        base.mkdir(parents=True, exist_ok=True)
        resolved = base.resolve(strict=True)
    except OSError as e:
        raise PathResolutionError(
            f"Cannot create output directory {base}: {e}",
            details={"directory": str(base), "error": str(e)},
        )
    if not resolved.is_dir():
        raise PathResolutionError(
            f"Output location is not a directory: {resolved}",
            details={"directory": str(resolved)},
        )
    return resolved


def remove_file_at(path: Path) -> bool:
    """Remove a previous output file. Returns whether a file was removed.

    A missing file is not an error. Other failures are logged and left for the
    encoder sink to report when it refuses the occupied location.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Could not remove previous output %s: %s", path, e)
        return False
    logger.info(f"Removed previous output {path}")
    return True
