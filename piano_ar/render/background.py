"""
Background pass: draws the latest camera frame over the whole render target.

The pass uses a single over-sized triangle generated from the vertex index,
so no vertex or index buffers are bound. The frame is uploaded to a texture
that is only recreated when the frame size changes.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np
import wgpu

logger = logging.getLogger(__name__)


shader_source = """
struct VertexOutput {
    @builtin(position) position: vec4<f32>,
    @location(0) tex_coords: vec2<f32>,
};

@vertex
fn vs_main(@builtin(vertex_index) in_vertex_index: u32) -> VertexOutput {
    var out: VertexOutput;
    let x = f32((in_vertex_index << 1u) & 2u);
    let y = f32(in_vertex_index & 2u);
    out.position = vec4<f32>(x * 2.0 - 1.0, y * 2.0 - 1.0, 0.0, 1.0);
    out.tex_coords = vec2<f32>(x, 1.0 - y);
    return out;
}

@group(0) @binding(0)
var t_diffuse: texture_2d<f32>;
@group(0) @binding(1)
var s_diffuse: sampler;

@fragment
fn fs_main(in: VertexOutput) -> @location(0) vec4<f32> {
    return textureSample(t_diffuse, s_diffuse, in.tex_coords);
}
"""


@dataclass
class SamplerConfig:
    address_mode: str = wgpu.AddressMode.clamp_to_edge
    mag_filter: str = wgpu.FilterMode.linear
    min_filter: str = wgpu.FilterMode.nearest
    mipmap_filter: str = wgpu.MipmapFilterMode.nearest

    def descriptor(self):
        return {
            "address_mode_u": self.address_mode,
            "address_mode_v": self.address_mode,
            "address_mode_w": self.address_mode,
            "mag_filter": self.mag_filter,
            "min_filter": self.min_filter,
            "mipmap_filter": self.mipmap_filter,
        }


def frame_to_rgba(frame: np.ndarray) -> np.ndarray:
    '''
    Convert a camera frame to the RGBA layout the background texture expects.
    :param frame: BGR (H x W x 3), BGRA (H x W x 4) or greyscale (H x W) image
    :return: contiguous H x W x 4 uint8 RGBA image
    '''
    if frame is None or frame.size == 0:
        raise ValueError("Cannot convert an empty frame")

    if frame.ndim == 2:
        code = cv2.COLOR_GRAY2RGBA
    elif frame.ndim == 3 and frame.shape[2] == 3:
        code = cv2.COLOR_BGR2RGBA
    elif frame.ndim == 3 and frame.shape[2] == 4:
        code = cv2.COLOR_BGRA2RGBA
    else:
        raise ValueError(f"Unsupported frame shape {frame.shape}")

    return np.ascontiguousarray(cv2.cvtColor(frame, code))


def create_bind_group_layout(device: wgpu.GPUDevice):
    return device.create_bind_group_layout(
        label="background bind group layout",
        entries=[
            wgpu.BindGroupLayoutEntry(
                binding=0,
                visibility=wgpu.ShaderStage.FRAGMENT,
                texture={
                    "sample_type": wgpu.TextureSampleType.float,
                    "view_dimension": wgpu.TextureViewDimension.d2,
                    "multisampled": False,
                },
            ),
            wgpu.BindGroupLayoutEntry(
                binding=1,
                visibility=wgpu.ShaderStage.FRAGMENT,
                sampler={"type": wgpu.SamplerBindingType.filtering},
            ),
        ],
    )


def create_render_pipeline(device: wgpu.GPUDevice, bind_group_layout, target_format, sample_count=1):
    shader = device.create_shader_module(label="background shader", code=shader_source)
    pipeline_layout = device.create_pipeline_layout(
        label="background pipeline layout", bind_group_layouts=[bind_group_layout]
    )

    return device.create_render_pipeline(
        label="background pipeline",
        layout=pipeline_layout,
        vertex=wgpu.VertexState(
            module=shader,
            entry_point="vs_main",
            buffers=[],
        ),
        primitive=wgpu.PrimitiveState(
            topology=wgpu.PrimitiveTopology.triangle_list,
            front_face=wgpu.FrontFace.ccw,
            cull_mode=wgpu.CullMode.back,
        ),
        depth_stencil=None,
        multisample=wgpu.MultisampleState(
            count=sample_count,
            mask=0xFFFFFFFF,
            alpha_to_coverage_enabled=False,
        ),
        fragment=wgpu.FragmentState(
            module=shader,
            entry_point="fs_main",
            targets=[
                wgpu.ColorTargetState(
                    format=target_format,
                    blend={
                        "color": {
                            "src_factor": wgpu.BlendFactor.one,
                            "dst_factor": wgpu.BlendFactor.zero,
                            "operation": wgpu.BlendOperation.add,
                        },
                        "alpha": {
                            "src_factor": wgpu.BlendFactor.one,
                            "dst_factor": wgpu.BlendFactor.zero,
                            "operation": wgpu.BlendOperation.add,
                        },
                    },
                    write_mask=wgpu.ColorWrite.ALL,
                )
            ],
        ),
    )


class BackgroundPass:
    '''
    Full-screen blit of an RGBA image onto a render target.
    '''
    def __init__(self,
                 device: wgpu.GPUDevice,
                 target_format,
                 texture_format=wgpu.TextureFormat.rgba8unorm_srgb,
                 sampler_config: SamplerConfig = None,
                 sample_count: int = 1):
        '''
        :param device: wgpu device the pass renders with
        :param target_format: texture format of the colour attachment
        :param texture_format: format of the uploaded frame texture
        :param sampler_config: filtering and addressing of the frame sampler
        :param sample_count: multisample count of the render target
        '''
        self.device = device
        self.target_format = target_format
        self.texture_format = texture_format
        self.sampler_config = sampler_config or SamplerConfig()
        self.sample_count = sample_count

        self.bind_group_layout = create_bind_group_layout(device)
        self.render_pipeline = create_render_pipeline(
            device, self.bind_group_layout, target_format, sample_count
        )
        self.sampler = device.create_sampler(
            label="background sampler", **self.sampler_config.descriptor()
        )

        self.texture = None
        self.bind_group = None

    @property
    def texture_size(self):
        if self.texture is None:
            return None
        return self.texture.size[0], self.texture.size[1]

    def _create_texture(self, width, height):
        self.texture = self.device.create_texture(
            label="background texture",
            size=(width, height, 1),
            mip_level_count=1,
            sample_count=1,
            dimension=wgpu.TextureDimension.d2,
            format=self.texture_format,
            usage=wgpu.TextureUsage.TEXTURE_BINDING | wgpu.TextureUsage.COPY_DST,
        )
        self.bind_group = self.device.create_bind_group(
            label="background bind group",
            layout=self.bind_group_layout,
            entries=[
                wgpu.BindGroupEntry(binding=0, resource=self.texture.create_view()),
                wgpu.BindGroupEntry(binding=1, resource=self.sampler),
            ],
        )
        logger.debug(f"Created background texture {width}x{height}")

    def upload(self, rgba: np.ndarray):
        '''
        Write an RGBA image into the background texture.
        :param rgba: H x W x 4 uint8 image, row 0 is the top of the image
        '''
        if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
            raise ValueError(f"Expected an H x W x 4 uint8 image, got {rgba.shape} {rgba.dtype}")

        height, width = rgba.shape[:2]
        if self.texture_size != (width, height):
            self._create_texture(width, height)

        data = np.ascontiguousarray(rgba)
        self.device.queue.write_texture(
            {"texture": self.texture, "mip_level": 0, "origin": (0, 0, 0)},
            data,
            {"offset": 0, "bytes_per_row": data.strides[0]},
            (width, height, 1),
        )

    def encode(self, command_encoder, target_view, clear_value=(0, 0, 0, 1), resolve_target=None):
        '''
        Record the background pass into a command encoder.
        Nothing but the clear is recorded before the first upload.
        '''
        render_pass = command_encoder.begin_render_pass(
            label="background pass",
            color_attachments=[
                wgpu.RenderPassColorAttachment(
                    view=target_view,
                    resolve_target=resolve_target,
                    clear_value=clear_value,
                    load_op=wgpu.LoadOp.clear,
                    store_op=wgpu.StoreOp.store,
                )
            ],
        )
        if self.bind_group is not None:
            render_pass.set_pipeline(self.render_pipeline)
            render_pass.set_bind_group(0, self.bind_group)
            render_pass.draw(3, 1, 0, 0)
        render_pass.end()

    def draw(self, target_view, **kwargs):
        command_encoder = self.device.create_command_encoder(label="background encoder")
        self.encode(command_encoder, target_view, **kwargs)
        self.device.queue.submit([command_encoder.finish()])
