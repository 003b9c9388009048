from .background import BackgroundPass, SamplerConfig, frame_to_rgba, shader_source
from .offscreen import render_offscreen
from .reference import fullscreen_triangle, fullscreen_triangle_vertex, rasterize, reference_blit
