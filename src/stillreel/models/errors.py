"""Error hierarchy and error detail models."""

from pydantic import BaseModel, Field


class StillreelError(Exception):
    """Base error for all Stillreel errors."""

    def __init__(self, message: str, component: str = "", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}


class PathResolutionError(StillreelError):
    """The output location cannot be created or resolved."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="settings", details=details)


class PoolExhausted(StillreelError):
    """No free frame buffer is left in the pool."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="buffer_pool", details=details)


class EncoderError(StillreelError):
    """Errors raised by the encoder sink."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="encoder", details=details)


class UnsupportedConfiguration(EncoderError):
    """Codec, container or frame size cannot be encoded."""


class SinkCreationError(EncoderError):
    """The encoder session could not be created."""


class AppendAfterNotReady(EncoderError):
    """A frame was appended while the sink was not accepting data."""


class TimestampOrderError(EncoderError):
    """A presentation time is not the next constant-rate slot."""


class EncoderWriteError(EncoderError):
    """Frame data could not be delivered to the encoder."""


class FinalizationError(EncoderError):
    """The output container could not be finalized."""


class RenderCancelled(EncoderError):
    """The render was cancelled before it finished."""


class RenderFailed(StillreelError):
    """A render was aborted by an unrecoverable error."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="render", details=details)


class ErrorDetail(BaseModel):
    """Serializable description of a Stillreel error."""

    error_type: str = Field(..., description="Error category")
    component: str = Field(default="", description="Component that raised the error")
    message: str = Field(..., description="Human-readable error message")
    details: dict = Field(default_factory=dict)
    retry_possible: bool = Field(default=False)

    @classmethod
    def from_exception(cls, exc: StillreelError, retry: bool = False) -> "ErrorDetail":
        return cls(
            error_type=type(exc).__name__,
            component=exc.component,
            message=exc.message,
            details=exc.details,
            retry_possible=retry,
        )
