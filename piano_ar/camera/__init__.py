from .calibration import CalibrationError, CameraCalibrator, CameraIntrinsics, load_calibration, save_calibration
from .camera_manager import CameraManager
from .capture import VideoSource
