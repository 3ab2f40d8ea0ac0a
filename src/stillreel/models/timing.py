"""Media timestamps expressed as integer ticks of a timescale."""

import math
from fractions import Fraction

from pydantic import BaseModel, ConfigDict, Field

# 600 is a common multiple of the standard rates 24, 25, 30 and 60 fps.
TIMESCALE = 600


class MediaTime(BaseModel):
    """A rational timestamp: ``value`` ticks of ``1 / timescale`` seconds."""

    model_config = ConfigDict(frozen=True)

    value: int = Field(..., ge=0)
    timescale: int = Field(default=TIMESCALE, gt=0)

    @property
    def seconds(self) -> float:
        return self.value / self.timescale

    def as_fraction(self) -> Fraction:
        return Fraction(self.value, self.timescale)

    def __mul__(self, multiplier: int) -> "MediaTime":
        if not isinstance(multiplier, int) or multiplier < 0:
            return NotImplemented
        return MediaTime(value=self.value * multiplier, timescale=self.timescale)

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MediaTime):
            return NotImplemented
        return self.as_fraction() == other.as_fraction()

    def __lt__(self, other: "MediaTime") -> bool:
        return self.as_fraction() < other.as_fraction()

    def __le__(self, other: "MediaTime") -> bool:
        return self.as_fraction() <= other.as_fraction()

    def __hash__(self) -> int:
        return hash(self.as_fraction())


ZERO = MediaTime(value=0)


def timescale_for(fps: int) -> int:
    """Smallest timescale that is a multiple of TIMESCALE and divisible by ``fps``."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    return TIMESCALE * fps // math.gcd(TIMESCALE, fps)


def frame_duration(fps: int) -> MediaTime:
    """Duration of one frame at ``fps`` as an exact tick count."""
    timescale = timescale_for(fps)
    return MediaTime(value=timescale // fps, timescale=timescale)
