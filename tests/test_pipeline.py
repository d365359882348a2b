"""Tests for the GPU rendering pipeline."""

import numpy as np
import pytest

from dither_studio.core.buffer import Frame, new_buffer
from dither_studio.core.dispatcher import apply
from dither_studio.core.errors import (
    PipelineDisposed,
    PipelineNotInitialized,
    RenderError,
    ShaderCompileError,
    UnsupportedContext,
)
from dither_studio.core.quantize import quantize
from dither_studio.core.settings import Algorithm, Settings
from dither_studio.core.threshold import ordered
from dither_studio.gpu.pipeline import (
    DitherPipeline,
    PipelineState,
    RenderState,
    Surface,
)


class TestInitialize:
    def test_ready_after_initialize(self, fake_pipeline, fake_ctx):
        assert fake_pipeline.state is PipelineState.READY
        assert fake_pipeline.surface == Surface(8, 4)
        assert len(fake_ctx.programs) == 2
        assert len(fake_ctx.textures) == 1

    def test_sampler_bound_to_unit_zero(self, fake_ctx, fake_pipeline):
        for program in fake_ctx.programs:
            assert program.uniforms["u_image"].value == 0

    def test_context_failure(self):
        def factory():
            raise Exception("no display")

        pipeline = DitherPipeline(context_factory=factory)
        with pytest.raises(UnsupportedContext):
            pipeline.initialize(Surface(4, 4))
        assert pipeline.state is PipelineState.UNINITIALIZED

    def test_old_gl_version(self, context_cls):
        ctx = context_cls(version_code=210)
        pipeline = DitherPipeline(context_factory=lambda: ctx)
        with pytest.raises(UnsupportedContext):
            pipeline.initialize(Surface(4, 4))
        assert ctx.released

    def test_fragment_compile_error(self, context_cls):
        ctx = context_cls(fail_stage="fragment")
        pipeline = DitherPipeline(context_factory=lambda: ctx)
        with pytest.raises(ShaderCompileError) as exc_info:
            pipeline.initialize(Surface(4, 4))
        assert exc_info.value.stage == "fragment"
        assert "error" in exc_info.value.log
        assert ctx.released

    def test_link_error(self, context_cls):
        ctx = context_cls(fail_stage="link")
        pipeline = DitherPipeline(context_factory=lambda: ctx)
        with pytest.raises(ShaderCompileError) as exc_info:
            pipeline.initialize(Surface(4, 4))
        assert exc_info.value.stage == "link"

    def test_methods_before_initialize(self, context_cls):
        pipeline = DitherPipeline(context_factory=context_cls)
        with pytest.raises(PipelineNotInitialized):
            pipeline.render()
        with pytest.raises(PipelineNotInitialized):
            pipeline.update_settings({"threshold": 3})


class TestSourceTexture:
    def test_resizes_surface(self, fake_pipeline, fake_ctx):
        first_fbo = fake_ctx.framebuffers[0]
        fake_pipeline.set_source_texture(new_buffer(16, 9))
        assert fake_pipeline.surface == Surface(16, 9)
        assert first_fbo.released
        assert fake_ctx.textures[-1].size == (16, 9)

    def test_same_size_reuses_texture(self, fake_pipeline, fake_ctx):
        fake_pipeline.set_source_texture(Frame(new_buffer(8, 4, (1, 2, 3, 4))))
        assert len(fake_ctx.textures) == 1
        assert fake_ctx.textures[0].data[:4] == bytes([1, 2, 3, 4])

    def test_degenerate_frame_ignored(self, fake_pipeline):
        fake_pipeline.set_source_texture(np.zeros((0, 5, 4), dtype=np.uint8))
        assert fake_pipeline.surface == Surface(8, 4)


class TestUpdateSettings:
    def test_shallow_merge(self, fake_pipeline):
        fake_pipeline.update_settings({"threshold": 10})
        fake_pipeline.update_settings({"noiseAmount": 0.5})
        settings = fake_pipeline.render_state.settings
        assert settings.threshold == 10
        assert settings.noise_amount == 0.5

    def test_copy_on_write(self, fake_pipeline):
        before = fake_pipeline.render_state
        fake_pipeline.update_settings({"matrix_size": 4})
        assert before.settings.matrix_size == 8
        assert fake_pipeline.render_state is not before

    def test_clamped(self, fake_pipeline):
        fake_pipeline.update_settings({"threshold": 999, "colorReduction": 0})
        assert fake_pipeline.render_state.settings.threshold == 255
        assert fake_pipeline.render_state.settings.color_reduction == 1

    def test_temporal_flag(self, fake_pipeline):
        assert fake_pipeline.render_state.temporal_dithering is True
        fake_pipeline.update_settings({"temporalDithering": False})
        assert fake_pipeline.render_state.temporal_dithering is False

    def test_accepts_settings(self, fake_pipeline):
        fake_pipeline.update_settings(Settings(algorithm=Algorithm.BAYER))
        assert fake_pipeline.render_state.settings.algorithm is Algorithm.BAYER

    def test_no_draw(self, fake_pipeline, fake_ctx):
        fake_pipeline.update_settings({"threshold": 1})
        assert fake_ctx.draws == []

    def test_render_state_merge(self):
        state = RenderState().merged({"passes": 3, "temporal_dithering": False})
        assert state.settings.passes == 3
        assert state.temporal_dithering is False


class TestRender:
    def test_requires_source(self, fake_pipeline):
        with pytest.raises(RenderError):
            fake_pipeline.render()
        assert fake_pipeline.state is PipelineState.READY

    def test_one_draw_with_diffusion_program(self, fake_pipeline, fake_ctx):
        fake_pipeline.set_source_texture(new_buffer(8, 4))
        fake_pipeline.render(0.25, True)
        assert len(fake_ctx.draws) == 1
        program = fake_ctx.draws[0]
        assert "u_matrix_size" not in program.source
        assert program.uniforms["u_split_position"].value == 0.25
        assert program.uniforms["u_show_split"].value is True
        assert program.uniforms["u_threshold"].value == 128.0
        assert program.uniforms["u_resolution"].value == (8.0, 4.0)
        assert fake_pipeline.state is PipelineState.READY

    @pytest.mark.parametrize(
        "algorithm",
        [Algorithm.BAYER, Algorithm.ORDERED, Algorithm.CLUSTERED, Algorithm.HALFTONE],
    )
    def test_ordered_program(self, fake_pipeline, fake_ctx, algorithm):
        fake_pipeline.set_source_texture(new_buffer(8, 4))
        fake_pipeline.update_settings({"algorithm": algorithm.value, "matrixSize": 4})
        fake_pipeline.render()
        program = fake_ctx.draws[-1]
        assert program.uniforms["u_matrix_size"].value == 4

    def test_elapsed_time_uniform(self, fake_pipeline, fake_ctx, clock):
        fake_pipeline.set_source_texture(new_buffer(8, 4))
        clock.now += 2.5
        fake_pipeline.render()
        assert fake_ctx.draws[-1].uniforms["u_time"].value == pytest.approx(2.5)

    def test_draw_failure_keeps_pipeline_usable(self, fake_pipeline, fake_ctx):
        fake_pipeline.set_source_texture(new_buffer(8, 4))
        fake_ctx.fail_draw = True
        with pytest.raises(RenderError):
            fake_pipeline.render()
        assert fake_pipeline.state is PipelineState.READY
        fake_ctx.fail_draw = False
        fake_pipeline.render()
        assert len(fake_ctx.draws) == 1

    def test_read_pixels_shape(self, fake_pipeline):
        assert fake_pipeline.read_pixels().shape == (4, 8, 4)


class TestDispose:
    def test_releases_resources(self, fake_pipeline, fake_ctx):
        fake_pipeline.dispose()
        assert fake_pipeline.state is PipelineState.DISPOSED
        assert fake_ctx.released
        assert all(p.released for p in fake_ctx.programs)
        assert all(t.released for t in fake_ctx.textures)
        assert all(b.released for b in fake_ctx.buffers)

    @pytest.mark.parametrize(
        "call",
        [
            lambda p: p.initialize(Surface(2, 2)),
            lambda p: p.set_source_texture(new_buffer(2, 2)),
            lambda p: p.update_settings({"threshold": 1}),
            lambda p: p.render(),
            lambda p: p.read_pixels(),
            lambda p: p.elapsed(),
            lambda p: p.dispose(),
        ],
    )
    def test_calls_after_dispose_fail(self, fake_pipeline, call):
        fake_pipeline.dispose()
        with pytest.raises(PipelineDisposed):
            call(fake_pipeline)

    def test_context_manager(self, fake_ctx):
        with DitherPipeline(context_factory=lambda: fake_ctx) as pipeline:
            pipeline.initialize(Surface(2, 2))
        assert pipeline.state is PipelineState.DISPOSED


def _two_tone(width=8, height=4):
    """Rows alternating between dark and light gray."""
    buf = new_buffer(width, height, (40, 40, 40, 255))
    buf[1::2, :, :3] = 220
    return buf


def _noise(width, height, seed):
    """Opaque random RGBA buffer."""
    buf = np.random.default_rng(seed).integers(0, 256, (height, width, 4), dtype=np.uint8)
    buf[..., 3] = 255
    return buf


class TestRealContext:
    def test_split_view(self, gl_pipeline):
        source = _two_tone()
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings({"algorithm": "threshold", "temporalDithering": False})
        gl_pipeline.render(0.5, True)
        out = gl_pipeline.read_pixels()

        settings = gl_pipeline.render_state.settings
        assert np.array_equal(out[:, :4], quantize(source, settings.color_reduction)[:, :4])
        assert np.array_equal(out[:, 4:], apply(source, settings)[:, 4:])

    def test_split_hidden(self, gl_pipeline):
        source = _two_tone()
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings({"algorithm": "threshold", "temporalDithering": False})
        gl_pipeline.render(0.5, False)
        out = gl_pipeline.read_pixels()
        assert np.array_equal(out, apply(source, gl_pipeline.render_state.settings))

    def test_quantized_split_side(self, gl_pipeline):
        source = _two_tone()
        source[..., :3] = 77
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings({"colorReduction": 3, "temporalDithering": False})
        gl_pipeline.render(1.0, True)
        out = gl_pipeline.read_pixels()
        assert np.all(out[..., :3] == 64)

    @pytest.mark.parametrize("matrix_size", [2, 4, 8, 16])
    def test_ordered_matches_cpu(self, gl_pipeline, matrix_size):
        source = _noise(33, 37, seed=5)
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings(
            {"algorithm": "bayer", "matrixSize": matrix_size, "temporalDithering": False}
        )
        gl_pipeline.render(0.0, False)
        assert np.array_equal(gl_pipeline.read_pixels(), ordered(source, matrix_size))

    def test_split_view_ordered(self, gl_pipeline):
        source = _noise(32, 12, seed=9)
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings(
            {"algorithm": "halftone", "matrixSize": 8, "colorReduction": 4,
             "temporalDithering": False}
        )
        gl_pipeline.render(0.5, True)
        out = gl_pipeline.read_pixels()

        settings = gl_pipeline.render_state.settings
        assert np.array_equal(out[:, :16], quantize(source, 4)[:, :16])
        assert np.array_equal(out[:, 16:], apply(source, settings)[:, 16:])

    def test_threshold_matches_cpu(self, gl_pipeline):
        source = _noise(33, 37, seed=7)
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings(
            {"algorithm": "threshold", "threshold": 100, "temporalDithering": False}
        )
        gl_pipeline.render(0.0, False)
        assert np.array_equal(
            gl_pipeline.read_pixels(), apply(source, gl_pipeline.render_state.settings)
        )

    def test_elapsed_fails_after_dispose(self, gl_pipeline):
        gl_pipeline.dispose()
        with pytest.raises(PipelineDisposed):
            gl_pipeline.elapsed()

    def test_noise_skips_split_side(self, gl_pipeline):
        source = _noise(16, 8, seed=3)
        gl_pipeline.set_source_texture(source)
        gl_pipeline.update_settings(
            {"noiseAmount": 1.0, "colorReduction": 5, "temporalDithering": False}
        )
        gl_pipeline.render(1.0, True)
        assert np.array_equal(gl_pipeline.read_pixels(), quantize(source, 5))
