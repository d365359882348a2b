"""Compiled shader programs with uniform setters resolved at link time."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import moderngl

from dither_studio.core.errors import ShaderCompileError

logger = logging.getLogger(__name__)

# Uniform name -> value kind. Names the linker optimized away are skipped.
UNIFORMS = {
    "u_threshold": "float",
    "u_color_reduction": "int",
    "u_noise_amount": "float",
    "u_resolution": "vec2",
    "u_show_split": "bool",
    "u_split_position": "float",
    "u_temporal_dithering": "bool",
    "u_time": "float",
    "u_matrix_size": "int",
}

_CONVERTERS = {
    "float": float,
    "int": int,
    "bool": bool,
    "vec2": lambda v: (float(v[0]), float(v[1])),
}


def _failed_stage(message: str) -> str:
    if "Linker" in message:
        return "link"
    if "fragment_shader" in message:
        return "fragment"
    if "vertex_shader" in message:
        return "vertex"
    return "program"


@dataclass
class UniformSetter:
    """Typed setter for one uniform, bound to its location once."""

    name: str
    kind: str
    uniform: Any | None

    @property
    def active(self) -> bool:
        return self.uniform is not None

    def set(self, value: Any) -> None:
        if self.uniform is not None:
            self.uniform.value = _CONVERTERS[self.kind](value)


class ShaderProgram:
    """One linked program plus its vertex array over the shared quad."""

    def __init__(
        self,
        ctx: moderngl.Context,
        family: str,
        vertex_source: str,
        fragment_source: str,
        quad: moderngl.Buffer,
    ) -> None:
        self.family = family
        try:
            self.program = ctx.program(
                vertex_shader=vertex_source,
                fragment_shader=fragment_source,
            )
        except moderngl.Error as e:
            stage = _failed_stage(str(e))
            logger.error("Failed to build %s program (%s stage)", family, stage)
            raise ShaderCompileError(stage, str(e)) from e

        self.vao = ctx.vertex_array(self.program, [(quad, "2f", "in_position")])

        sampler = self.program.get("u_image", None)
        if sampler is not None:
            sampler.value = 0

        self.uniforms = {
            name: UniformSetter(name, kind, self.program.get(name, None))
            for name, kind in UNIFORMS.items()
        }

    def set(self, name: str, value: Any) -> None:
        self.uniforms[name].set(value)

    def render(self) -> None:
        self.vao.render(moderngl.TRIANGLE_STRIP)

    def release(self) -> None:
        self.vao.release()
        self.program.release()
