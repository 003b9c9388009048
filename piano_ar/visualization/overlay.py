import cv2
import numpy as np

# RGB, cycled by corner index when drawing debug points
TEST_COLORS = [
    (1.0, 0.0, 0.0),
    (0.5, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, 0.5, 0.0),
    (0.0, 0.0, 1.0),
    (0.0, 0.0, 0.5),
    (1.0, 1.0, 0.0),
    (0.5, 0.5, 0.0),
    (1.0, 0.0, 1.0),
    (0.5, 0.0, 0.5),
    (0.0, 1.0, 1.0),
    (0.0, 0.5, 0.5),
    (1.0, 1.0, 1.0),
    (0.5, 0.5, 0.5)
]

SILVER = (192, 192, 192)  # BGR
GREEN = (0, 128, 0)


def debug_color_bgr(i):
    "debug palette colour i as an OpenCV BGR tuple"
    r, g, b = TEST_COLORS[i % len(TEST_COLORS)]
    return (b * 255.0, g * 255.0, r * 255.0)


def _to_pixels(points, frame, margin=1000):
    '''
    Round projected points to pixels, None if any is not finite or far outside the frame.
    '''
    points = np.asarray(points).reshape(-1, 2)
    if not np.isfinite(points).all():
        return None

    h, w = frame.shape[:2]
    pts = [(int(round(p[0])), int(round(p[1]))) for p in points]
    for p in pts:
        if not (-margin < p[0] < w + margin and -margin < p[1] < h + margin):
            return None
    return pts


def _faces_camera(fiducial, keyboard_pose):
    # marker normal is +y in the keyboard frame
    normal_cam = keyboard_pose.rotation @ np.array([0.0, 1.0, 0.0])
    center = np.array([fiducial.x_offset, 0.0, 0.0])
    center_cam = keyboard_pose.rotation @ center + keyboard_pose.tvec.ravel()
    return float(normal_cam @ center_cam) < 0


def draw_fiducial_planes(frame, transformer, keyboard_pose, layout, alpha=0.6):
    '''
    Draw a filled square over every configured marker, silver when its face points
    at the camera and green when the camera looks at its back.
    :param frame: BGR image, drawn in place
    :param transformer: CoordinateTransformer with the camera intrinsics
    :param keyboard_pose: KeyboardPose of the current frame
    :param layout: FiducialLayout of the markers
    :param alpha: opacity of the squares
    :return: number of squares drawn
    '''
    if keyboard_pose is None:
        return 0

    overlay = frame.copy()
    drawn = 0

    for fiducial in layout.fiducials:
        corners = fiducial.get_corners()
        if not transformer.is_in_front_of_camera(corners, keyboard_pose).all():
            continue  # behind camera

        pts = _to_pixels(transformer.project_points(corners, keyboard_pose), frame)
        if pts is None:
            continue

        color = SILVER if _faces_camera(fiducial, keyboard_pose) else GREEN
        cv2.fillConvexPoly(overlay, np.array(pts, dtype=np.int32), color, cv2.LINE_AA)
        drawn += 1

    if drawn:
        cv2.addWeighted(overlay, alpha, frame, 1 - alpha, 0, frame)

    return drawn


def draw_keyboard_axes(frame, transformer, keyboard_pose, length=0.05):
    '''
    Draw the keyboard frame axes, x red, y green, z blue.
    :return: True if the axes were drawn
    '''
    if keyboard_pose is None or keyboard_pose.tvec[2, 0] <= 0:
        return False

    pts = _to_pixels(transformer.get_keyboard_axes(keyboard_pose, length), frame)
    if pts is None:
        return False

    o, x, y, z = pts

    cv2.arrowedLine(frame, o, x, (0, 0, 255), 2)   # X - red
    cv2.arrowedLine(frame, o, y, (0, 255, 0), 2)   # Y - green
    cv2.arrowedLine(frame, o, z, (255, 0, 0), 2)   # Z - blue
    return True


def draw_tag_box(frame, det):
    (ptA, ptB, ptC, ptD) = [(int(p[0]), int(p[1])) for p in det.corners]

    cv2.line(frame, ptA, ptB, (0,255,0), 2)
    cv2.line(frame, ptB, ptC, (0,255,0), 2)
    cv2.line(frame, ptC, ptD, (0,255,0), 2)
    cv2.line(frame, ptD, ptA, (0,255,0), 2)

    (cX, cY) = (int(det.center[0]), int(det.center[1]))
    cv2.circle(frame, (cX, cY), 5, (0, 0, 255), -1)
    cv2.putText(frame, str(det.tag_id), (cX + 8, cY - 8),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2, cv2.LINE_AA)


def draw_debug_points(frame, detections, transformer=None, keyboard_pose=None, layout=None):
    '''
    Highlight the detected marker corners with filled circles and, when a pose is
    known, the re-projected keyboard-frame corners with rings of the same colour.
    '''
    flat_corners = [c for det in detections for c in np.asarray(det.corners).reshape(-1, 2)]

    for i, point in enumerate(flat_corners):
        cv2.circle(frame, (int(point[0]), int(point[1])), 10, debug_color_bgr(i), -1, cv2.LINE_AA)

    if transformer is None or keyboard_pose is None or layout is None:
        return

    by_id = layout.by_id()
    object_corners = [
        by_id[det.tag_id].get_corners() for det in detections if det.tag_id in by_id
    ]
    if not object_corners:
        return

    projected = _to_pixels(transformer.project_points(np.vstack(object_corners), keyboard_pose), frame)
    if projected is None:
        return

    for i, p in enumerate(projected):
        cv2.circle(frame, p, 14, debug_color_bgr(i), 2, cv2.LINE_AA)


def draw_tracking_status(frame, tracking: bool):
    h, w = frame.shape[:2]

    if tracking:
        text = "TRACKING"
        color = (0, 255, 0)
    else:
        text = "NO POSE"
        color = (0, 0, 255)

    font = cv2.FONT_HERSHEY_SIMPLEX
    font_scale = 1
    thickness = 2

    # Get text size
    (text_width, text_height), _ = cv2.getTextSize(
        text, font, font_scale, thickness
    )

    # Top-right position
    x = w - text_width - 10
    y = 50

    cv2.putText(
        frame,
        text,
        (x, y),
        font,
        font_scale,
        color,
        thickness,
        cv2.LINE_AA
    )
