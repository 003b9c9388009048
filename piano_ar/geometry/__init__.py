from .pose import KeyboardPose, KeyboardPoseEstimator, match_corners
from .transforms import CoordinateTransformer
