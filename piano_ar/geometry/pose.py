import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class KeyboardPose:
    '''
    Pose of the keyboard frame in the camera frame (OpenCV convention):
    p_camera = rotation @ p_keyboard + tvec
    '''
    rvec: np.ndarray
    tvec: np.ndarray
    rotation: np.ndarray
    marker_ids: Tuple[int, ...] = ()
    inliers: int = 0

    @classmethod
    def from_vectors(cls, rvec, tvec, marker_ids=(), inliers=0):
        rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)
        R, _ = cv2.Rodrigues(rvec)
        return cls(rvec=rvec, tvec=tvec, rotation=R, marker_ids=tuple(marker_ids), inliers=inliers)

    @property
    def camera_rotation(self) -> np.ndarray:
        "orientation of the camera in the keyboard frame"
        # rotation matrices are orthogonal, the transpose is the inverse
        return self.rotation.T

    @property
    def camera_position(self) -> np.ndarray:
        "position of the camera in the keyboard frame: -R^T t"
        return (-self.rotation.T @ self.tvec).ravel()

    def to_y_up(self):
        '''
        Camera pose for a y-up renderer: position with y negated and the camera orientation.
        :return: (position (3,), rotation (3x3))
        '''
        position = self.camera_position.copy()
        position[1] = -position[1]
        return position, self.camera_rotation


def match_corners(detections, fiducials_by_id):
    '''
    Pair the image corners of every detection with the keyboard-frame corners of its marker.
    Detections of unknown markers are skipped.
    :return: object points (Nx3), image points (Nx2), matched ids
    '''
    object_points = []
    image_points = []
    ids = []

    for det in detections:
        fiducial = fiducials_by_id.get(det.tag_id)
        if fiducial is None:
            continue
        object_points.append(fiducial.get_corners())
        image_points.append(np.asarray(det.corners, dtype=np.float64).reshape(-1, 2))
        ids.append(det.tag_id)

    if not ids:
        return np.empty((0, 3)), np.empty((0, 2)), []

    return np.vstack(object_points), np.vstack(image_points), ids


class KeyboardPoseEstimator:
    '''
    Estimates the keyboard pose from the detected fiducial markers with RANSAC PnP.
    '''
    def __init__(self, camera_matrix, dist_coeffs, layout,
                 iterations_count: int = 100,
                 reprojection_error: float = 8.0,
                 confidence: float = 0.99):
        self.camera_matrix = camera_matrix
        self.dist_coeffs = dist_coeffs if dist_coeffs is not None else np.zeros((5, 1))
        self.layout = layout
        self.fiducials_by_id = layout.by_id()

        self.iterations_count = iterations_count
        self.reprojection_error = reprojection_error
        self.confidence = confidence

        self.last_pose: Optional[KeyboardPose] = None

    def count_inliers(self, object_points, image_points, rvec, tvec) -> int:
        "number of corners the final pose re-projects within the RANSAC threshold"
        projected, _ = cv2.projectPoints(object_points, rvec, tvec, self.camera_matrix, self.dist_coeffs)
        errors = np.linalg.norm(projected.reshape(-1, 2) - image_points, axis=1)
        return int(np.count_nonzero(errors <= self.reprojection_error))

    def estimate(self, detections: List) -> Optional[KeyboardPose]:
        '''
        Estimate the keyboard pose from one frame's detections.
        :param detections: objects with tag_id and corners (4x2), as returned by AprilTagDetector
        :return: KeyboardPose, or None if no pose could be found this frame
        '''
        if len(detections) == 0:
            logger.warning("No AprilTag markers detected")
            return None

        object_points, image_points, ids = match_corners(detections, self.fiducials_by_id)

        if not ids:
            logger.warning("None of the detected markers are part of the keyboard layout")
            return None

        if len(object_points) != len(image_points):
            logger.warning(
                f"Number of fiducial corners ({len(object_points)}) does not match "
                f"number of detected corners ({len(image_points)})"
            )
            return None

        # Use SolvePnP to determine the pose of the keyboard relative to the camera
        success, rvec, tvec, _ = cv2.solvePnPRansac(
            object_points,
            image_points,
            self.camera_matrix,
            self.dist_coeffs,
            iterationsCount=self.iterations_count,
            reprojectionError=self.reprojection_error,
            confidence=self.confidence,
            flags=cv2.SOLVEPNP_ITERATIVE
        )

        if not success:
            logger.warning("Failed to solve PnP for AprilTag markers")
            return None

        pose = KeyboardPose.from_vectors(
            rvec, tvec,
            marker_ids=ids,
            inliers=self.count_inliers(object_points, image_points, rvec, tvec)
        )
        self.last_pose = pose

        logger.debug(
            f"Camera transform updated: translation = {pose.camera_position}, markers = {ids}"
        )
        return pose
