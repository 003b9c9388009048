import logging
from pathlib import Path

import yaml

from .calibration import load_calibration, save_calibration

logger = logging.getLogger(__name__)


class CameraManager:
    def __init__(self, cfg_path = "camera.yaml", project_root = None):
        self.cfg_path = Path(cfg_path)
        # relative calibration paths are resolved against the project root
        self.project_root = Path(project_root) if project_root is not None else self.cfg_path.resolve().parents[1]
        self.cameras = {}
        self.current_camera = None
        self.load_cfg()

    def load_cfg(self):
        "load camera config from camera-yaml file"
        with open(self.cfg_path, "r") as f:
            self.cfg = yaml.safe_load(f) or {}

        self.cameras = self.cfg.get("cameras", {})
        if not self.cameras:
            raise ValueError(f"No cameras configured in {self.cfg_path}")

        default_name = self.cfg.get("default_camera", "laptop_webcam")

        if default_name in self.cameras:
            self.current_camera = default_name
        else:
            self.current_camera = list(self.cameras.keys())[0]

        logger.info(f"Loaded {len(self.cameras)} cameras. Current camera is {self.current_camera}")

    def save_cfg(self):
        "save camera config to camera-yaml file"
        self.cfg["cameras"] = self.cameras
        with open(self.cfg_path, "w") as f:
            yaml.dump(self.cfg, f, default_flow_style=False)
        logger.info(f"Saved camera config to {self.cfg_path}")

    def switch_camera(self, camera_name):
        "switch camera from current camera to new one"
        if camera_name in self.cameras:
            self.current_camera = camera_name
            logger.info(f"Switching to camera {camera_name}")
            return True
        else:
            logger.warning(f"Camera {camera_name} not found.")
            return False

    def get_camera_names(self):
        "get camera names"
        return list(self.cameras.keys())

    def get_current_camera_cfg(self):
        "get current camera config"
        return self.cameras.get(self.current_camera, {})

    def calibration_path(self, camera_name = None):
        "absolute path of the camera's calibration file"
        if camera_name is None:
            camera_name = self.current_camera

        path = Path(self.cameras[camera_name].get("calibration_file", "assets/calibration.json"))
        if not path.is_absolute():
            path = self.project_root / path
        return path

    def is_calibrated(self, camera_name = None):
        return self.calibration_path(camera_name).exists()

    def get_intrinsics(self, camera_name = None):
        "load the camera intrinsics from the camera's calibration file"
        if camera_name is None:
            camera_name = self.current_camera

        if camera_name not in self.cameras:
            raise KeyError(f"Camera {camera_name} not found")

        return load_calibration(self.calibration_path(camera_name))

    def update_calibration(self, camera_name, intrinsics):
        "update camera calibration"
        if camera_name not in self.cameras:
            logger.warning(f"Camera {camera_name} not found.")
            return False

        save_calibration(self.calibration_path(camera_name), intrinsics)

        calibration = self.cameras[camera_name].setdefault("calibration", {})
        calibration["calibration_date"] = intrinsics.calibration_time
        calibration["mean_error"] = float(intrinsics.avg_reprojection_error)

        self.save_cfg()
        logger.info(f"Calibration updated for {camera_name}, mean_error: {intrinsics.avg_reprojection_error:.4f}")
        return True
