"""Shared fixtures: a recording stand-in for a ModernGL context."""

import re

import moderngl
import numpy as np
import pytest

from dither_studio.gpu.pipeline import DitherPipeline, PipelineState, Surface


class FakeResource:
    def __init__(self):
        self.released = False

    def release(self):
        self.released = True


class FakeUniform:
    def __init__(self):
        self.value = None


class FakeProgram(FakeResource):
    def __init__(self, fragment_shader):
        super().__init__()
        self.source = fragment_shader
        names = re.findall(r"uniform\s+\w+\s+(\w+);", fragment_shader)
        self.uniforms = {name: FakeUniform() for name in names}

    def get(self, name, default=None):
        return self.uniforms.get(name, default)


class FakeVertexArray(FakeResource):
    def __init__(self, ctx, program):
        super().__init__()
        self.ctx = ctx
        self.program = program

    def render(self, mode):
        if self.ctx.fail_draw:
            raise moderngl.Error("draw failed")
        self.ctx.draws.append(self.program)


class FakeTexture(FakeResource):
    def __init__(self, size, components, data=None):
        super().__init__()
        self.size = size
        self.components = components
        self.data = data
        self.filter = None
        self.repeat_x = True
        self.repeat_y = True

    def write(self, data):
        self.data = data

    def use(self, location=0):
        pass


class FakeFramebuffer(FakeResource):
    def __init__(self, size):
        super().__init__()
        self.size = size

    def use(self):
        pass

    def clear(self, *color):
        pass

    def read(self, components=4, alignment=1):
        width, height = self.size
        return bytes(width * height * components)


class FakeContext(FakeResource):
    def __init__(self, version_code=330, fail_stage=None):
        super().__init__()
        self.version_code = version_code
        self.fail_stage = fail_stage
        self.fail_draw = False
        self.draws = []
        self.programs = []
        self.textures = []
        self.framebuffers = []
        self.buffers = []

    def buffer(self, data):
        buf = FakeResource()
        self.buffers.append(buf)
        return buf

    def program(self, vertex_shader, fragment_shader):
        if self.fail_stage == "fragment":
            raise moderngl.Error(
                "GLSL Compiler failed\n\nfragment_shader\n===============\n0:1(1): error"
            )
        if self.fail_stage == "link":
            raise moderngl.Error("GLSL Linker failed\n\nerror: unresolved symbol")
        program = FakeProgram(fragment_shader)
        self.programs.append(program)
        return program

    def vertex_array(self, program, content):
        return FakeVertexArray(self, program)

    def texture(self, size, components, data=None):
        texture = FakeTexture(size, components, data)
        self.textures.append(texture)
        return texture

    def simple_framebuffer(self, size, components=4):
        fbo = FakeFramebuffer(size)
        self.framebuffers.append(fbo)
        return fbo


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def fake_ctx():
    return FakeContext()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_pipeline(fake_ctx, clock):
    """Initialized pipeline backed by the recording context."""
    pipeline = DitherPipeline(context_factory=lambda: fake_ctx, clock=clock)
    pipeline.initialize(Surface(8, 4))
    return pipeline


# Default backend first (X11, WGL, CGL), then headless EGL.
GL_CONTEXT_FACTORIES = (
    moderngl.create_standalone_context,
    lambda: moderngl.create_standalone_context(backend="egl"),
)


@pytest.fixture
def gl_pipeline():
    """Pipeline on a real standalone OpenGL context, skipped without one."""
    from dither_studio.core.errors import UnsupportedContext

    failures = []
    for factory in GL_CONTEXT_FACTORIES:
        pipeline = DitherPipeline(context_factory=factory)
        try:
            pipeline.initialize(Surface(8, 4))
        except UnsupportedContext as e:
            failures.append(str(e))
            continue
        break
    else:
        pytest.skip("No OpenGL context available: " + "; ".join(failures))
    yield pipeline
    if pipeline.state is not PipelineState.DISPOSED:
        pipeline.dispose()


def gray_buffer(rows):
    """RGBA buffer from a 2D list of gray levels."""
    gray = np.array(rows, dtype=np.uint8)
    rgba = np.empty(gray.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = gray[..., None]
    rgba[..., 3] = 255
    return rgba


@pytest.fixture
def make_gray():
    return gray_buffer


@pytest.fixture
def context_cls():
    return FakeContext
