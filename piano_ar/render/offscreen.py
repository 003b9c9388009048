import numpy as np
import wgpu


def render_offscreen(background_pass, size, clear_value=(0, 0, 0, 1)):
    '''
    Render the background pass into an offscreen texture and read it back.
    A multisampled pass renders into a multisampled attachment that is resolved into the read-back texture.
    :param background_pass: BackgroundPass whose target format is rgba8unorm(-srgb)
    :param size: (width, height) of the render target
    :return: height x width x 4 uint8 array
    '''
    device = background_pass.device
    width, height = size
    bpp = 4

    texture = device.create_texture(
        label="offscreen target",
        size=(width, height, 1),
        dimension=wgpu.TextureDimension.d2,
        format=background_pass.target_format,
        usage=wgpu.TextureUsage.RENDER_ATTACHMENT | wgpu.TextureUsage.COPY_SRC,
    )

    if background_pass.sample_count > 1:
        msaa_texture = device.create_texture(
            label="offscreen msaa target",
            size=(width, height, 1),
            sample_count=background_pass.sample_count,
            dimension=wgpu.TextureDimension.d2,
            format=background_pass.target_format,
            usage=wgpu.TextureUsage.RENDER_ATTACHMENT,
        )
        background_pass.draw(
            msaa_texture.create_view(),
            clear_value=clear_value,
            resolve_target=texture.create_view(),
        )
    else:
        background_pass.draw(texture.create_view(), clear_value=clear_value)

    data = device.queue.read_texture(
        {"texture": texture, "mip_level": 0, "origin": (0, 0, 0)},
        {"offset": 0, "bytes_per_row": bpp * width, "rows_per_image": height},
        (width, height, 1),
    )
    return np.frombuffer(data, dtype=np.uint8).reshape(height, width, bpp).copy()
