"""
Per-frame processing: capture a camera frame, track the keyboard, draw the overlay.

The stages always run in that order. A failed capture ends the frame early;
tracking failures only mean the overlay is drawn without a pose.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .geometry import CoordinateTransformer, KeyboardPose, KeyboardPoseEstimator
from .visualization import (
    draw_debug_points,
    draw_fiducial_planes,
    draw_keyboard_axes,
    draw_tag_box,
    draw_tracking_status,
)

logger = logging.getLogger(__name__)


@dataclass
class FrameState:
    frame: Optional[np.ndarray] = None
    detections: List = field(default_factory=list)
    pose: Optional[KeyboardPose] = None


class FramePipeline:
    def __init__(self, source, detector, intrinsics, layout, debug_points=False):
        '''
        :param source: VideoSource (anything with read() returning a BGR frame or None)
        :param detector: AprilTagDetector
        :param intrinsics: CameraIntrinsics of the source
        :param layout: FiducialLayout of the keyboard markers
        :param debug_points: draw marker corners for debugging
        '''
        self.source = source
        self.detector = detector
        self.layout = layout
        self.debug_points = debug_points

        self.transformer = CoordinateTransformer(intrinsics.camera_matrix, intrinsics.dist_coeffs)
        self.estimator = KeyboardPoseEstimator(intrinsics.camera_matrix, intrinsics.dist_coeffs, layout)
        self.state = FrameState()

    def capture(self):
        self.state = FrameState(frame=self.source.read())
        if self.state.frame is None:
            logger.warning("No frame captured from camera")
        return self.state.frame

    def update(self):
        self.state.detections = self.detector.detect(self.state.frame)
        self.state.pose = self.estimator.estimate(self.state.detections)
        return self.state.pose

    def draw(self):
        frame = self.state.frame
        pose = self.state.pose

        draw_fiducial_planes(frame, self.transformer, pose, self.layout)
        draw_keyboard_axes(frame, self.transformer, pose)
        for det in self.state.detections:
            draw_tag_box(frame, det)

        if self.debug_points:
            draw_debug_points(frame, self.state.detections, self.transformer, pose, self.layout)

        draw_tracking_status(frame, pose is not None)
        return frame

    def step(self):
        '''
        Run capture, update and draw for one frame.
        :return: the composited BGR frame, or None if no frame was captured
        '''
        if self.capture() is None:
            return None
        self.update()
        return self.draw()
