import numpy as np

from piano_ar.geometry import CoordinateTransformer, KeyboardPose
from piano_ar.visualization import (
    TEST_COLORS,
    draw_debug_points,
    draw_fiducial_planes,
    draw_keyboard_axes,
    draw_tag_box,
    draw_tracking_status,
)
from piano_ar.visualization.overlay import GREEN, SILVER


def make_transformer(intrinsics):
    return CoordinateTransformer(intrinsics.camera_matrix, intrinsics.dist_coeffs)


def test_fiducial_planes_face_camera(blank_frame, intrinsics, true_pose, layout, detections):
    drawn = draw_fiducial_planes(blank_frame, make_transformer(intrinsics), true_pose, layout, alpha=1.0)
    assert drawn == 4

    # centre of every marker is painted silver
    for det in detections:
        cx, cy = det.corners.mean(axis=0).astype(int)
        assert tuple(blank_frame[cy, cx]) == SILVER


def test_fiducial_planes_back_side_is_green(intrinsics, layout):
    # camera below the keyboard plane, looking up at the markers' backs
    pose = KeyboardPose.from_vectors([1.95, 0.0, 0.0], [0.0, 0.05, 0.9])
    frame = np.zeros((720, 1280, 3), dtype=np.uint8)
    transformer = make_transformer(intrinsics)

    assert draw_fiducial_planes(frame, transformer, pose, layout, alpha=1.0) == 4
    center = transformer.project_points(layout.fiducials[1].get_corners(), pose).mean(axis=0).astype(int)
    assert tuple(frame[center[1], center[0]]) == GREEN


def test_fiducial_planes_without_pose(blank_frame, intrinsics, layout):
    assert draw_fiducial_planes(blank_frame, make_transformer(intrinsics), None, layout) == 0
    assert not blank_frame.any()


def test_fiducial_planes_behind_camera(blank_frame, intrinsics, layout):
    pose = KeyboardPose.from_vectors([-1.95, 0.0, 0.0], [0.0, 0.0, -0.9])
    assert draw_fiducial_planes(blank_frame, make_transformer(intrinsics), pose, layout) == 0
    assert not blank_frame.any()


def test_keyboard_axes(blank_frame, intrinsics, true_pose):
    assert draw_keyboard_axes(blank_frame, make_transformer(intrinsics), true_pose)
    assert blank_frame.any()


def test_keyboard_axes_behind_camera(blank_frame, intrinsics):
    pose = KeyboardPose.from_vectors([0.0, 0.0, 0.0], [0.0, 0.0, -1.0])
    assert not draw_keyboard_axes(blank_frame, make_transformer(intrinsics), pose)
    assert not draw_keyboard_axes(blank_frame, make_transformer(intrinsics), None)
    assert not blank_frame.any()


def test_tag_box(blank_frame, detections):
    det = detections[0]
    draw_tag_box(blank_frame, det)
    cx, cy = det.center.astype(int)
    assert tuple(blank_frame[cy, cx]) == (0, 0, 255)


def test_debug_points_use_palette(blank_frame, detections):
    draw_debug_points(blank_frame, detections)

    for i, corner in enumerate(np.vstack([d.corners for d in detections])):
        r, g, b = TEST_COLORS[i % len(TEST_COLORS)]
        x, y = corner.astype(int)
        expected = (round(b * 255), round(g * 255), round(r * 255))
        assert tuple(int(v) for v in blank_frame[y, x]) == expected


def test_debug_points_with_reprojection(blank_frame, intrinsics, true_pose, layout, detections):
    reference = blank_frame.copy()
    draw_debug_points(reference, detections)
    draw_debug_points(blank_frame, detections, make_transformer(intrinsics), true_pose, layout)
    # rings around every corner on top of the filled circles
    assert (blank_frame != reference).any()


def test_tracking_status(blank_frame):
    draw_tracking_status(blank_frame, True)
    h, w = blank_frame.shape[:2]
    top_right = blank_frame[:60, w // 2:]
    assert top_right.any()
    assert not blank_frame[100:].any()
    # green text
    assert top_right[..., 1].max() == 255
    assert top_right[..., 2].max() < 255

    frame = np.zeros_like(blank_frame)
    draw_tracking_status(frame, False)
    assert frame[:60, w // 2:, 2].max() == 255
