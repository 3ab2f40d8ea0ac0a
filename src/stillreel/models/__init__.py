"""Data models for Stillreel."""

from stillreel.models.errors import (
    AppendAfterNotReady,
    EncoderError,
    EncoderWriteError,
    ErrorDetail,
    FinalizationError,
    PathResolutionError,
    PoolExhausted,
    RenderCancelled,
    RenderFailed,
    SinkCreationError,
    StillreelError,
    TimestampOrderError,
    UnsupportedConfiguration,
)
from stillreel.models.render import EncoderState, RenderOutcome, RenderSettings, VideoCodec
from stillreel.models.timing import TIMESCALE, MediaTime, frame_duration, timescale_for

__all__ = [
    "TIMESCALE",
    "AppendAfterNotReady",
    "EncoderError",
    "EncoderState",
    "EncoderWriteError",
    "ErrorDetail",
    "FinalizationError",
    "MediaTime",
    "PathResolutionError",
    "PoolExhausted",
    "RenderCancelled",
    "RenderFailed",
    "RenderOutcome",
    "RenderSettings",
    "SinkCreationError",
    "StillreelError",
    "TimestampOrderError",
    "UnsupportedConfiguration",
    "VideoCodec",
    "frame_duration",
    "timescale_for",
]
