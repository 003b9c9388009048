"""
Piano AR - camera feed of a piano keyboard with a tracked overlay

Modules:
    - camera: Camera calibration, configuration and capture
    - detection: AprilTag fiducial detection and marker layout
    - geometry: Keyboard pose estimation and coordinate transformations
    - visualization: Drawing overlays and debug views
    - render: Full-screen background pass (wgpu) and its CPU reference
"""

from .camera import CalibrationError, CameraCalibrator, CameraIntrinsics, CameraManager, VideoSource
from .detection import AprilTagDetector, FiducialLayout, FiducialPosition, load_fiducial_layout
from .geometry import CoordinateTransformer, KeyboardPose, KeyboardPoseEstimator
from .pipeline import FramePipeline
from .render import BackgroundPass, SamplerConfig, frame_to_rgba, reference_blit

__version__ = "0.1.0"
