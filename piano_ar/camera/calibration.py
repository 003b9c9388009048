import json
import logging
import os
import platform
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

CALIBRATION_KEYS = (
    "camera",
    "platform",
    "avg_reprojection_error",
    "camera_matrix",
    "distortion_coefficients",
    "distortion_model",
    "img_size",
    "calibration_time",
)

# number of coefficients cv2 accepts for its distortion models
VALID_DISTORTION_LENGTHS = (4, 5, 8, 12, 14)


class CalibrationError(ValueError):
    '''Raised when calibration data is missing, malformed or cannot be computed.'''


@dataclass
class CameraIntrinsics:
    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray
    image_size: Optional[Tuple[int, int]] = None
    camera: str = ""
    platform: str = ""
    avg_reprojection_error: float = 0.0
    distortion_model: str = "rational_polynomial"
    calibration_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def scaled_to(self, image_size):
        '''
        Rescale intrinsics calibrated at self.image_size to another capture resolution.
        :param image_size: (width, height) of the new resolution
        :return: new CameraIntrinsics
        '''
        if self.image_size is None or tuple(image_size) == tuple(self.image_size):
            return self

        sx = image_size[0] / self.image_size[0]
        sy = image_size[1] / self.image_size[1]

        mtx = self.camera_matrix.copy()
        mtx[0, 0] *= sx
        mtx[0, 2] *= sx
        mtx[1, 1] *= sy
        mtx[1, 2] *= sy

        return CameraIntrinsics(
            camera_matrix=mtx,
            dist_coeffs=self.dist_coeffs.copy(),
            image_size=(int(image_size[0]), int(image_size[1])),
            camera=self.camera,
            platform=self.platform,
            avg_reprojection_error=self.avg_reprojection_error,
            distortion_model=self.distortion_model,
            calibration_time=self.calibration_time,
        )

    def to_dict(self):
        return {
            "camera": self.camera,
            "platform": self.platform,
            "avg_reprojection_error": float(self.avg_reprojection_error),
            "camera_matrix": self.camera_matrix.tolist(),
            "distortion_coefficients": self.dist_coeffs.ravel().tolist(),
            "distortion_model": self.distortion_model,
            "img_size": list(self.image_size) if self.image_size is not None else [],
            "calibration_time": self.calibration_time,
        }


def load_calibration(path) -> CameraIntrinsics:
    '''
    Load camera intrinsics from a calibration json file.
    :param path: path to the calibration file, e.g. assets/calibration.json
    :return: CameraIntrinsics
    '''
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise CalibrationError(f"Calibration file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise CalibrationError(f"Could not parse calibration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise CalibrationError(f"Calibration file {path} does not contain an object")

    missing = [k for k in CALIBRATION_KEYS if k not in data]
    if missing:
        raise CalibrationError(f"Calibration file {path} is missing {', '.join(missing)}")

    try:
        camera_matrix = np.array(data["camera_matrix"], dtype=np.float64)
        dist_coeffs = np.array(data["distortion_coefficients"], dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise CalibrationError(f"Calibration file {path} has non-numeric values: {e}") from e

    if camera_matrix.shape != (3, 3):
        raise CalibrationError(
            f"Camera matrix in {path} must be 3x3, got shape {camera_matrix.shape}"
        )
    if dist_coeffs.size not in VALID_DISTORTION_LENGTHS:
        raise CalibrationError(
            f"Distortion coefficients in {path} must have one of {VALID_DISTORTION_LENGTHS} entries, "
            f"got {dist_coeffs.size}"
        )

    try:
        width, height = (int(v) for v in data["img_size"])
    except (TypeError, ValueError) as e:
        raise CalibrationError(
            f"Image size in {path} must be [width, height], got {data['img_size']!r}"
        ) from e
    image_size = (width, height)

    intrinsics = CameraIntrinsics(
        camera_matrix=camera_matrix,
        dist_coeffs=dist_coeffs,
        image_size=image_size,
        camera=str(data["camera"]),
        platform=str(data["platform"]),
        avg_reprojection_error=float(data["avg_reprojection_error"]),
        distortion_model=str(data["distortion_model"]),
        calibration_time=str(data["calibration_time"]),
    )
    logger.info(f"Loaded calibration for '{intrinsics.camera}' from {path}")
    return intrinsics


def save_calibration(path, intrinsics: CameraIntrinsics):
    "save camera intrinsics to a calibration json file"
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(intrinsics.to_dict(), f, indent=4)
    logger.info(f"Saved calibration to {path}")


class CameraCalibrator:
    def __init__(self, pattern_size=(8,6),square_size= 0.025):
        """
        :param pattern_size: (columns, rows) of inner corners
        :param square_size: size of chessboard squares in meters
        """
        self.pattern_size = pattern_size
        self.square_size = square_size
        self.criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)

        self.objp = np.zeros((pattern_size[0]*pattern_size[1],3), np.float32)
        self.objp[:, :2] = np.mgrid[0:pattern_size[0],0:pattern_size[1]].T.reshape(-1,2)
        self.objp *= square_size

        self.objpoints = []  #3D points in real world
        self.imgpoints = []  #2D points in image plane
        self.calibration_images = []

    def find_corners(self, img):
        """
        Find and refine chessboard corners in a single image
        :param img: BGR or greyscale image
        :return: refined corners or None
        """
        gray = img if img.ndim == 2 else cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        ret, corners = cv2.findChessboardCorners(gray, self.pattern_size, None)
        if not ret:
            return None
        return cv2.cornerSubPix(gray, corners, (11,11), (-1, -1), criteria=self.criteria)

    def find_chessboard_corners(self, image_paths, showcorners=False):
        """
        Find chessboard corners in image_paths
        :param image_paths: path to calibration images
        :param showcorners: Debug visualization of chessboard corners
        :return: number of images with chessboard corners
        """
        self.objpoints = []
        self.imgpoints = []
        self.calibration_images = []

        for i, fname in enumerate(image_paths):
            img = cv2.imread(str(fname))
            if img is None:
                logger.warning(f"Could not read {fname}")
                continue

            corners = self.find_corners(img)

            if corners is not None:
                self.objpoints.append(self.objp)
                self.imgpoints.append(corners)
                self.calibration_images.append(fname)

                if showcorners:
                    cv2.drawChessboardCorners(img, self.pattern_size, corners, True)
                    cv2.imshow("Chessboard Corners", img)
                    cv2.waitKey(500)

                logger.info(f"Corners found in image {i+1}/{len(image_paths)}: {fname}")

            else:
                logger.info(f"Could not find chessboard corners in image {i+1}/{len(image_paths)}: {fname}")

        if showcorners:
            cv2.destroyAllWindows()

        return len(self.imgpoints)

    def calibrate(self, image_size):
        """
        Calibrate Camera
        :param image_size: (width, height) of the calibration images
        :return: camera matrix, distortion coefficients, mean error
        """
        if not self.objpoints:
            raise CalibrationError("No chessboard corners found, cannot calibrate")

        logger.info(f"Calibrating with {len(self.objpoints)} images")

        #OpenCV calibration
        ret, mtx, dist, rvecs, tvecs = cv2.calibrateCamera(self.objpoints, self.imgpoints, image_size, None, None)

        #Calculate projection error, indicator for Exactness of found calibration parameters
        mean_error = 0
        for i in range(len(self.objpoints)):
            imgpoints2, _ = cv2.projectPoints(self.objpoints[i], rvecs[i], tvecs[i], mtx, dist)

            error = cv2.norm(self.imgpoints[i], imgpoints2, cv2.NORM_L2) / len(imgpoints2)
            mean_error += error

        mean_error /= len(self.objpoints)

        return mtx, dist, mean_error

    def to_intrinsics(self, camera_name, image_size, mtx, dist, mean_error):
        "wrap a calibration result into CameraIntrinsics"
        return CameraIntrinsics(
            camera_matrix=np.asarray(mtx, dtype=np.float64),
            dist_coeffs=np.asarray(dist, dtype=np.float64).ravel(),
            image_size=(int(image_size[0]), int(image_size[1])),
            camera=camera_name,
            platform=platform.system().lower(),
            avg_reprojection_error=float(mean_error),
            distortion_model="plumb_bob",
        )

    def save_calibration_images(self, camera, num_images, save_dir):
        """
        Save camera calibration images
        :param camera: camera_instance-> VideoSource
        :param num_images: number of calibration images
        :param save_dir: directory to save calibration images
        :return: saved images
        """

        os.makedirs(save_dir, exist_ok=True)

        print(f"capturing {num_images} calibration images")
        print("press 's' to save image, 'q' to quit early")

        saved_images = []
        count = 0

        while count < num_images:
            frame = camera.read()
            if frame is None:
                break

            display = frame.copy()
            cv2.putText(display, f"Captured: {count}/ {num_images}", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 1, (0, 255, 0),2)
            cv2.putText(display, "Press 's' to save, or 'q' to quit", (10, 70), cv2.FONT_HERSHEY_SIMPLEX, 0.75, (0, 255, 0),2)
            cv2.imshow("frame", display)

            key = cv2.waitKey(1) & 0xFF

            if key == ord('s'):
                # Check if corners get detected
                gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
                ret_corners, _ = cv2.findChessboardCorners(gray, self.pattern_size, None)
                if ret_corners:
                    filename = f"{save_dir}/calib_{count:03d}.jpg"
                    cv2.imwrite(filename, frame)
                    saved_images.append(filename)
                    count +=1
                    print(f"Image saved: {count} / {num_images}")
                else:
                    print(f"Could not find chessboard corners")

            elif key == ord('q'):
                print("Capturing stopped early")
                break

        cv2.destroyAllWindows()
        return saved_images
