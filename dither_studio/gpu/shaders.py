"""GLSL sources for the real-time dithering pipeline.

One vertex stage is shared by every program. Each fragment stage is the
common prelude (source sampling, quantization, noise, split view) plus a
family-specific binarization.

Channel math runs on the 0-255 scale so that quantization matches the
CPU path exactly for 8-bit inputs.
"""

from __future__ import annotations

VERTEX_SHADER = """
#version 330

in vec2 in_position;
out vec2 v_uv;

void main() {
    gl_Position = vec4(in_position, 0.0, 1.0);
    v_uv = in_position * 0.5 + 0.5;
}
"""

_FRAGMENT_PRELUDE = """
#version 330

uniform sampler2D u_image;
uniform float u_threshold;
uniform int u_color_reduction;
uniform float u_noise_amount;
uniform vec2 u_resolution;
uniform bool u_show_split;
uniform float u_split_position;
uniform bool u_temporal_dithering;
uniform float u_time;

in vec2 v_uv;
out vec4 f_color;

float hash(vec2 co) {
    return fract(sin(dot(co, vec2(12.9898, 78.233))) * 43758.5453);
}

vec3 quantize(vec3 rgb) {
    float step_size = exp2(float(8 - u_color_reduction));
    return floor(rgb / step_size) * step_size;
}

vec3 add_noise(vec3 rgb) {
    if (u_noise_amount <= 0.0) {
        return rgb;
    }
    float noise = hash(v_uv) * 2.0 - 1.0;
    return clamp(rgb + noise * u_noise_amount * 255.0, 0.0, 255.0);
}
"""

DIFFUSION_FRAGMENT = _FRAGMENT_PRELUDE + """
void main() {
    vec4 color = texture(u_image, v_uv);
    vec3 reduced = quantize(floor(color.rgb * 255.0 + 0.5));

    if (u_show_split && v_uv.x < u_split_position) {
        f_color = vec4(reduced / 255.0, color.a);
        return;
    }

    vec3 rgb = add_noise(reduced);
    float gray = (rgb.r + rgb.g + rgb.b) / 3.0;

    float threshold = u_threshold;
    if (u_temporal_dithering) {
        threshold += sin(u_time * 0.1) * 0.02 * 255.0;
    }

    float value = gray > threshold ? 1.0 : 0.0;
    f_color = vec4(vec3(value), color.a);
}
"""

ORDERED_FRAGMENT = _FRAGMENT_PRELUDE + """
uniform int u_matrix_size;

float quadrant_offset(int q) {
    if (q == 0) return 0.0;
    if (q == 1) return 0.5;
    if (q == 2) return 0.75;
    return 0.25;
}

// Same recursion as the CPU matrix: the top-level quadrant contributes
// its offset at full scale, each finer level at a quarter of the last.
float matrix_threshold(ivec2 p, int n) {
    float value = 0.0;
    float scale = 1.0;
    for (int half_size = n / 2; half_size >= 1; half_size /= 2) {
        int q = 2 * ((p.y / half_size) % 2) + ((p.x / half_size) % 2);
        value += quadrant_offset(q) * scale;
        scale *= 0.25;
    }
    return value;
}

void main() {
    vec4 color = texture(u_image, v_uv);
    vec3 reduced = quantize(floor(color.rgb * 255.0 + 0.5));

    if (u_show_split && v_uv.x < u_split_position) {
        f_color = vec4(reduced / 255.0, color.a);
        return;
    }

    vec2 coord = floor(v_uv * u_resolution);
    if (u_temporal_dithering) {
        coord = floor(v_uv * u_resolution + vec2(sin(u_time * 0.2), cos(u_time * 0.2)) * 0.5);
    }
    float n = float(u_matrix_size);
    ivec2 p = ivec2(mod(coord, n));

    float local = matrix_threshold(p, u_matrix_size) * 255.0;
    vec3 rgb = add_noise(reduced);
    f_color = vec4(vec3(greaterThan(rgb, vec3(local))), color.a);
}
"""

FRAGMENT_SHADERS = {
    "diffusion": DIFFUSION_FRAGMENT,
    "ordered": ORDERED_FRAGMENT,
}
