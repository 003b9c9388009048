from .overlay import (
    TEST_COLORS,
    draw_debug_points,
    draw_fiducial_planes,
    draw_keyboard_axes,
    draw_tag_box,
    draw_tracking_status,
)
