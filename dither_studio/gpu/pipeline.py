"""GPU rendering pipeline for live dithering of images and video frames.

Lifecycle::

    Uninitialized --initialize()--> Ready <--render()--> Rendering
                                      |
                                  dispose()
                                      v
                                   Disposed

The pipeline owns one context, one program per dithering family, one
full-surface quad, one source texture and an offscreen framebuffer the
size of the current source.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Mapping

import moderngl
import numpy as np

from dither_studio.core.buffer import Frame, PixelBuffer, is_degenerate
from dither_studio.core.dispatcher import resolve
from dither_studio.core.errors import (
    PipelineDisposed,
    PipelineError,
    PipelineNotInitialized,
    RenderError,
    ShaderCompileError,
    UnsupportedContext,
)
from dither_studio.core.settings import Settings, normalize_keys
from dither_studio.gpu.program import ShaderProgram
from dither_studio.gpu.shaders import FRAGMENT_SHADERS, VERTEX_SHADER

logger = logging.getLogger(__name__)

MIN_GL_VERSION = 330

# Triangle strip covering clip space.
QUAD = np.array([-1.0, -1.0, 1.0, -1.0, -1.0, 1.0, 1.0, 1.0], dtype="f4")


class PipelineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RENDERING = "rendering"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class Surface:
    """Output surface dimensions in pixels."""

    width: int
    height: int


@dataclass(frozen=True)
class RenderState:
    """Everything the shaders read besides the per-call split arguments."""

    settings: Settings = field(default_factory=Settings)
    temporal_dithering: bool = True

    def merged(self, partial: Settings | Mapping[str, Any]) -> RenderState:
        """Shallow merge; fields missing from ``partial`` keep their values."""
        if isinstance(partial, Settings):
            return replace(self, settings=partial)

        temporal = self.temporal_dithering
        for key in ("temporal_dithering", "temporalDithering"):
            if key in partial:
                temporal = bool(partial[key])
        return RenderState(
            settings=self.settings.replace(**normalize_keys(partial)),
            temporal_dithering=temporal,
        )


class DitherPipeline:
    """Renders the dithering effect for one source at a time."""

    def __init__(
        self,
        context_factory: Callable[[], moderngl.Context] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._context_factory = context_factory or moderngl.create_standalone_context
        self._clock = clock
        self._state = PipelineState.UNINITIALIZED
        self._render_state = RenderState()
        self._surface: Surface | None = None
        self._start_time = 0.0
        self._has_source = False

        self.ctx: moderngl.Context | None = None
        self._programs: dict[str, ShaderProgram] = {}
        self._quad: moderngl.Buffer | None = None
        self._texture: moderngl.Texture | None = None
        self._fbo: moderngl.Framebuffer | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def render_state(self) -> RenderState:
        return self._render_state

    @property
    def surface(self) -> Surface | None:
        return self._surface

    def _require_ready(self) -> None:
        if self._state is PipelineState.DISPOSED:
            raise PipelineDisposed("Pipeline has been disposed")
        if self._state is PipelineState.UNINITIALIZED:
            raise PipelineNotInitialized("Call initialize() first")

    def initialize(self, surface: Surface) -> None:
        """Create the context, programs, quad, texture and framebuffer.

        Raises:
            UnsupportedContext: no GL 3.3 context is available.
            ShaderCompileError: a program failed to compile or link.
        """
        if self._state is PipelineState.DISPOSED:
            raise PipelineDisposed("Pipeline has been disposed")
        if self._state is not PipelineState.UNINITIALIZED:
            raise PipelineError("Pipeline is already initialized")

        try:
            ctx = self._context_factory()
        except Exception as e:
            raise UnsupportedContext(f"Cannot create GL context: {e}") from e

        if ctx.version_code < MIN_GL_VERSION:
            version = ctx.version_code
            ctx.release()
            raise UnsupportedContext(
                f"OpenGL {MIN_GL_VERSION} required, context offers {version}"
            )

        quad = ctx.buffer(QUAD.tobytes())
        programs: dict[str, ShaderProgram] = {}
        try:
            for family, source in FRAGMENT_SHADERS.items():
                programs[family] = ShaderProgram(ctx, family, VERTEX_SHADER, source, quad)
        except ShaderCompileError:
            for program in programs.values():
                program.release()
            quad.release()
            ctx.release()
            raise

        self.ctx = ctx
        self._quad = quad
        self._programs = programs
        self._surface = Surface(max(int(surface.width), 1), max(int(surface.height), 1))
        self._texture = self._create_texture(self._surface)
        self._fbo = ctx.simple_framebuffer((self._surface.width, self._surface.height), components=4)
        self._start_time = self._clock()
        self._state = PipelineState.READY
        logger.info(
            "Pipeline ready: %dx%d, GL %d",
            self._surface.width, self._surface.height, ctx.version_code,
        )

    def _create_texture(self, surface: Surface, data: bytes | None = None) -> moderngl.Texture:
        texture = self.ctx.texture((surface.width, surface.height), 4, data=data)
        texture.filter = (moderngl.NEAREST, moderngl.NEAREST)
        texture.repeat_x = False
        texture.repeat_y = False
        return texture

    def _resize(self, surface: Surface) -> None:
        self._texture.release()
        self._fbo.release()
        self._texture = self._create_texture(surface)
        self._fbo = self.ctx.simple_framebuffer((surface.width, surface.height), components=4)
        self._surface = surface
        logger.debug("Surface resized to %dx%d", surface.width, surface.height)

    def set_source_texture(self, frame: Frame | PixelBuffer) -> None:
        """Upload one image or video frame and size the surface to match.

        Zero-area frames are ignored.
        """
        self._require_ready()
        buffer = frame.buffer if isinstance(frame, Frame) else frame
        if is_degenerate(buffer):
            logger.debug("Ignoring zero-area source frame")
            return

        data = np.ascontiguousarray(buffer, dtype=np.uint8)
        height, width = data.shape[:2]
        surface = Surface(width, height)
        if surface != self._surface:
            self._resize(surface)
        self._texture.write(data.tobytes())
        self._has_source = True

    def update_settings(self, partial: Settings | Mapping[str, Any]) -> None:
        """Merge ``partial`` into the render state. Does not render."""
        self._require_ready()
        self._render_state = self._render_state.merged(partial)

    def elapsed(self) -> float:
        """Seconds since initialize(); drives temporal dithering."""
        self._require_ready()
        return self._clock() - self._start_time

    def render(self, split_position: float = 0.5, show_split: bool = True) -> None:
        """Draw the effect for the current source and state.

        With ``show_split`` the area left of ``split_position`` (0-1 of
        the width) shows the quantized source instead of the dithered one.

        Raises:
            RenderError: the draw failed; the pipeline stays Ready.
        """
        self._require_ready()
        if not self._has_source:
            raise RenderError("No source texture has been set")

        state = self._render_state
        settings = state.settings
        program = self._programs[resolve(settings.algorithm).family]

        self._state = PipelineState.RENDERING
        try:
            self._fbo.use()
            self._fbo.clear(0.0, 0.0, 0.0, 1.0)
            self._texture.use(location=0)

            program.set("u_threshold", settings.threshold)
            program.set("u_color_reduction", settings.color_reduction)
            program.set("u_noise_amount", settings.noise_amount)
            program.set("u_matrix_size", settings.matrix_size)
            program.set("u_resolution", (self._surface.width, self._surface.height))
            program.set("u_split_position", split_position)
            program.set("u_show_split", show_split)
            program.set("u_temporal_dithering", state.temporal_dithering)
            program.set("u_time", self.elapsed())

            program.render()
        except moderngl.Error as e:
            raise RenderError(f"Render failed: {e}") from e
        finally:
            self._state = PipelineState.READY

    def read_pixels(self) -> PixelBuffer:
        """Rendered surface as an RGBA buffer with top-left origin."""
        self._require_ready()
        width, height = self._surface.width, self._surface.height
        data = self._fbo.read(components=4, alignment=1)
        return np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4).copy()

    def dispose(self) -> None:
        """Release every GL resource. The pipeline cannot be reused."""
        if self._state is PipelineState.DISPOSED:
            raise PipelineDisposed("Pipeline has already been disposed")

        for program in self._programs.values():
            program.release()
        self._programs = {}
        for resource in (self._quad, self._texture, self._fbo, self.ctx):
            if resource is not None:
                resource.release()
        self._quad = self._texture = self._fbo = None
        self.ctx = None
        self._has_source = False
        self._state = PipelineState.DISPOSED
        logger.info("Pipeline disposed")

    def __enter__(self) -> DitherPipeline:
        return self

    def __exit__(self, *exc_info) -> None:
        if self._state is not PipelineState.DISPOSED:
            self.dispose()
