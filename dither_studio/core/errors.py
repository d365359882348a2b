"""Exception hierarchy for the dithering engine and GPU pipeline."""

from __future__ import annotations


class DitherError(Exception):
    """Base class for all dither_studio errors."""


class InvalidSize(DitherError, ValueError):
    """Ordered matrix requested with a size that is not a power of two."""

    def __init__(self, size: int) -> None:
        super().__init__(f"Matrix size must be a power of two >= 2, got {size}")
        self.size = size


class PipelineError(DitherError):
    """Base class for GPU pipeline failures."""


class UnsupportedContext(PipelineError):
    """No hardware-accelerated context could be created."""


class ShaderCompileError(PipelineError):
    """A shader stage failed to compile or the program failed to link."""

    def __init__(self, stage: str, log: str) -> None:
        super().__init__(f"{stage} shader failed: {log}")
        self.stage = stage
        self.log = log


class PipelineDisposed(PipelineError):
    """A pipeline method was called after dispose()."""


class PipelineNotInitialized(PipelineError):
    """A pipeline method was called before initialize()."""


class RenderError(PipelineError):
    """A single render call failed; the pipeline stays usable."""
