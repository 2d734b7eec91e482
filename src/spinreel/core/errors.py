"""
Error taxonomy for the spin rendering pipeline.

Every error carries the pipeline stage it came from. Errors cross process
boundaries (worker -> coordinator) so they must survive pickling with only
their message, the same way worker task errors do elsewhere.
"""

from enum import Enum
from typing import Any


class Stage(str, Enum):
    """Pipeline stage an error originated in."""
    SUBMIT = "submit"
    PLAN = "plan"
    RENDER = "render"
    ENCODE = "encode"
    WORKER = "worker"
    STATIC = "static"


class SpinReelError(Exception):
    """Base class for all pipeline errors."""

    default_stage: Stage = Stage.WORKER

    def __init__(self, message: str = "", stage: Stage | str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.stage = Stage(stage) if stage is not None else self.default_stage
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __reduce__(self):
        return (_rebuild_error, (self.kind, self.message, self.stage.value, self.details))

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.message}"


class InvalidInput(SpinReelError):
    """Bad winning number, layout or render options. Never retried."""
    default_stage = Stage.SUBMIT


class SurfaceUnsupported(SpinReelError):
    """Render target lacks a required drawing capability."""
    default_stage = Stage.RENDER


class OutputTooLarge(SpinReelError):
    """Encoded output exceeded the byte budget."""
    default_stage = Stage.ENCODE

    @property
    def size_bytes(self) -> int:
        return int(self.details.get("size_bytes", 0))

    @property
    def budget_bytes(self) -> int:
        return int(self.details.get("budget_bytes", 0))

    @property
    def overshoot(self) -> float:
        """Ratio of produced size to budget (>1.0 when over)."""
        if self.budget_bytes <= 0:
            return float("inf")
        return self.size_bytes / self.budget_bytes


class RenderTimeout(SpinReelError):
    """Job exceeded its wall-clock bound."""
    default_stage = Stage.WORKER


class InternalRenderFailure(SpinReelError):
    """Unexpected exception while planning, rendering or encoding."""
    default_stage = Stage.WORKER


class JobCancelled(SpinReelError):
    """Raised inside a worker at a frame checkpoint once its job was abandoned."""
    default_stage = Stage.RENDER


ERROR_TYPES: dict[str, type[SpinReelError]] = {
    cls.__name__: cls
    for cls in (
        SpinReelError,
        InvalidInput,
        SurfaceUnsupported,
        OutputTooLarge,
        RenderTimeout,
        InternalRenderFailure,
        JobCancelled,
    )
}


def _rebuild_error(kind: str, message: str, stage: str, details: dict[str, Any]) -> SpinReelError:
    cls = ERROR_TYPES.get(kind, InternalRenderFailure)
    return cls(message, stage=stage, **details)


def error_from_message(kind: str, message: str, stage: str, details: dict[str, Any] | None = None) -> SpinReelError:
    """Rebuild a typed error from the fields of a worker error message.

    Unknown kinds (plain exceptions raised by user code) become
    InternalRenderFailure so callers only ever see the taxonomy.
    """
    return _rebuild_error(kind, message, stage, dict(details or {}))


def wrap_exception(exc: BaseException, stage: Stage | str) -> SpinReelError:
    """Convert any exception into a taxonomy error, keeping typed ones as-is."""
    if isinstance(exc, SpinReelError):
        return exc
    return InternalRenderFailure(f"{type(exc).__name__}: {exc}", stage=stage)
