import numpy as np
from typing import Tuple


def fullscreen_triangle_vertex(vertex_index: int) -> Tuple[np.ndarray, np.ndarray]:
    '''
    CPU version of the background vertex stage.
    :param vertex_index: built-in vertex index, 0, 1 or 2
    :return: clip-space position (4,) and texture coordinate (2,)
    '''
    x = float((vertex_index << 1) & 2)
    y = float(vertex_index & 2)

    position = np.array([x * 2.0 - 1.0, y * 2.0 - 1.0, 0.0, 1.0])
    # flip v, textures have their origin at the top-left
    tex_coords = np.array([x, 1.0 - y])

    return position, tex_coords


def fullscreen_triangle():
    '''
    All three vertices of the full-screen triangle.
    :return: positions (3x4) and texture coordinates (3x2)
    '''
    vertices = [fullscreen_triangle_vertex(i) for i in range(3)]
    positions = np.stack([v[0] for v in vertices])
    tex_coords = np.stack([v[1] for v in vertices])
    return positions, tex_coords


def pixel_centers_ndc(width, height):
    '''
    Normalized device coordinates of every pixel centre of a width x height target.
    Row 0 is the top of the target (ndc y = +1).
    '''
    xs = (np.arange(width) + 0.5) / width * 2.0 - 1.0
    ys = 1.0 - (np.arange(height) + 0.5) / height * 2.0
    ndc_x, ndc_y = np.meshgrid(xs, ys)
    return ndc_x, ndc_y


def rasterize(width, height):
    '''
    Rasterize the full-screen triangle at pixel centres.
    :return: coverage mask (H x W bool) and interpolated texture coordinates (H x W x 2)
    '''
    positions, tex_coords = fullscreen_triangle()
    p = positions[:, :2] / positions[:, 3:4]
    ndc_x, ndc_y = pixel_centers_ndc(width, height)

    (x0, y0), (x1, y1), (x2, y2) = p
    area = (x1 - x0) * (y2 - y0) - (x2 - x0) * (y1 - y0)

    # barycentric weights from the edge functions
    w0 = ((x1 - ndc_x) * (y2 - ndc_y) - (x2 - ndc_x) * (y1 - ndc_y)) / area
    w1 = ((x2 - ndc_x) * (y0 - ndc_y) - (x0 - ndc_x) * (y2 - ndc_y)) / area
    w2 = 1.0 - w0 - w1

    covered = (w0 >= 0) & (w1 >= 0) & (w2 >= 0)
    uv = (
        w0[..., None] * tex_coords[0]
        + w1[..., None] * tex_coords[1]
        + w2[..., None] * tex_coords[2]
    )
    return covered, uv


def _clamp(i, size):
    return np.clip(i, 0, size - 1)


def sample_nearest(texture, uv):
    '''
    Nearest-neighbour sampling with clamp-to-edge addressing.
    :param texture: H x W x C array
    :param uv: ... x 2 array of normalized texture coordinates
    '''
    h, w = texture.shape[:2]
    tx = _clamp(np.floor(uv[..., 0] * w).astype(int), w)
    ty = _clamp(np.floor(uv[..., 1] * h).astype(int), h)
    return texture[ty, tx].astype(np.float64)


def sample_linear(texture, uv):
    '''
    Bilinear sampling with clamp-to-edge addressing, texel centres at half-integers.
    '''
    h, w = texture.shape[:2]
    fx = uv[..., 0] * w - 0.5
    fy = uv[..., 1] * h - 0.5
    x0 = np.floor(fx).astype(int)
    y0 = np.floor(fy).astype(int)
    ax = (fx - x0)[..., None]
    ay = (fy - y0)[..., None]

    xa, xb = _clamp(x0, w), _clamp(x0 + 1, w)
    ya, yb = _clamp(y0, h), _clamp(y0 + 1, h)
    tex = texture.astype(np.float64)

    top = tex[ya, xa] * (1 - ax) + tex[ya, xb] * ax
    bottom = tex[yb, xa] * (1 - ax) + tex[yb, xb] * ax
    return top * (1 - ay) + bottom * ay


def select_filter(texture_size, target_size, mag_filter="linear", min_filter="nearest"):
    '''
    Pick the filter the sampler applies for a single mip level: magnification
    when the level of detail is <= 0, minification otherwise.
    :param texture_size: (width, height) of the texture
    :param target_size: (width, height) of the render target
    '''
    scale = max(texture_size[0] / target_size[0], texture_size[1] / target_size[1])
    lod = np.log2(scale)
    return mag_filter if lod <= 0 else min_filter


def reference_blit(texture, target_size, mag_filter="linear", min_filter="nearest", clear_value=0):
    '''
    Render the background pass on the CPU.
    :param texture: H x W x 4 uint8 RGBA image
    :param target_size: (width, height) of the output
    :param clear_value: value of pixels the triangle does not cover
    :return: target_height x target_width x 4 uint8 image
    '''
    texture = np.asarray(texture)
    width, height = target_size
    covered, uv = rasterize(width, height)

    mode = select_filter(
        (texture.shape[1], texture.shape[0]), target_size, mag_filter, min_filter
    )
    if mode == "nearest":
        color = sample_nearest(texture, uv)
    elif mode == "linear":
        color = sample_linear(texture, uv)
    else:
        raise ValueError(f"Unknown filter mode: {mode}")

    out = np.full((height, width, texture.shape[2]), clear_value, dtype=np.uint8)
    out[covered] = np.clip(np.round(color[covered]), 0, 255).astype(np.uint8)
    return out
