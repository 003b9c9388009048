import json

import numpy as np
import pytest

from conftest import ROOT
from piano_ar.camera import CalibrationError, CameraCalibrator, CameraIntrinsics, load_calibration, save_calibration


def write_json(path, data):
    path.write_text(json.dumps(data))
    return path


def calibration_data(**overrides):
    data = {
        "camera": "webcam",
        "platform": "linux",
        "avg_reprojection_error": 0.3,
        "camera_matrix": [[900.0, 0.0, 320.0], [0.0, 905.0, 240.0], [0.0, 0.0, 1.0]],
        "distortion_coefficients": [0.1, -0.2, 0.0, 0.0, 0.05],
        "distortion_model": "plumb_bob",
        "img_size": [640, 480],
        "calibration_time": "2025-01-01T12:00:00",
    }
    data.update(overrides)
    return data


def test_load_shipped_calibration():
    intrinsics = load_calibration(ROOT / "assets" / "calibration.json")
    assert intrinsics.camera_matrix.shape == (3, 3)
    assert intrinsics.camera_matrix.dtype == np.float64
    assert intrinsics.dist_coeffs.shape == (5,)
    assert intrinsics.image_size == (1280, 720)


def test_load_calibration(tmp_path):
    path = write_json(tmp_path / "calibration.json", calibration_data())
    intrinsics = load_calibration(path)

    assert intrinsics.camera == "webcam"
    assert intrinsics.camera_matrix[0, 0] == 900.0
    assert intrinsics.camera_matrix[1, 2] == 240.0
    assert intrinsics.dist_coeffs.tolist() == [0.1, -0.2, 0.0, 0.0, 0.05]
    assert intrinsics.avg_reprojection_error == pytest.approx(0.3)
    assert intrinsics.image_size == (640, 480)


def test_missing_file(tmp_path):
    with pytest.raises(CalibrationError, match="not found"):
        load_calibration(tmp_path / "nope.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "calibration.json"
    path.write_text("{ not json")
    with pytest.raises(CalibrationError, match="Could not parse"):
        load_calibration(path)


def test_missing_key(tmp_path):
    data = calibration_data()
    del data["camera_matrix"]
    path = write_json(tmp_path / "calibration.json", data)
    with pytest.raises(CalibrationError, match="camera_matrix"):
        load_calibration(path)


def test_camera_matrix_must_be_3x3(tmp_path):
    path = write_json(
        tmp_path / "calibration.json",
        calibration_data(camera_matrix=[[1.0, 0.0], [0.0, 1.0]]),
    )
    with pytest.raises(CalibrationError, match="3x3"):
        load_calibration(path)


def test_distortion_length(tmp_path):
    path = write_json(tmp_path / "calibration.json", calibration_data(distortion_coefficients=[]))
    with pytest.raises(CalibrationError, match="Distortion"):
        load_calibration(path)


@pytest.mark.parametrize("img_size", [1280, [1280], [1280, 720, 3], ["wide", "tall"], None])
def test_image_size_must_be_width_and_height(tmp_path, img_size):
    path = write_json(tmp_path / "calibration.json", calibration_data(img_size=img_size))
    with pytest.raises(CalibrationError, match="Image size"):
        load_calibration(path)


def test_calibration_error_is_value_error():
    assert issubclass(CalibrationError, ValueError)


def test_save_then_load(tmp_path):
    original = load_calibration(write_json(tmp_path / "a.json", calibration_data()))
    save_calibration(tmp_path / "sub" / "b.json", original)
    loaded = load_calibration(tmp_path / "sub" / "b.json")

    assert np.array_equal(loaded.camera_matrix, original.camera_matrix)
    assert np.array_equal(loaded.dist_coeffs, original.dist_coeffs)
    assert loaded.calibration_time == original.calibration_time


def test_scaled_to():
    intrinsics = CameraIntrinsics(
        camera_matrix=np.array([[900.0, 0.0, 320.0], [0.0, 905.0, 240.0], [0.0, 0.0, 1.0]]),
        dist_coeffs=np.zeros(5),
        image_size=(640, 480),
    )
    scaled = intrinsics.scaled_to((1280, 960))
    assert scaled.camera_matrix[0, 0] == 1800.0
    assert scaled.camera_matrix[1, 1] == 1810.0
    assert scaled.camera_matrix[0, 2] == 640.0
    assert scaled.camera_matrix[1, 2] == 480.0
    assert scaled.image_size == (1280, 960)
    # original untouched
    assert intrinsics.camera_matrix[0, 0] == 900.0

    assert intrinsics.scaled_to((640, 480)) is intrinsics


def test_chessboard_object_points():
    calibrator = CameraCalibrator(pattern_size=(4, 3), square_size=0.02)
    assert calibrator.objp.shape == (12, 3)
    assert calibrator.objp[1].tolist() == pytest.approx([0.02, 0.0, 0.0])
    assert calibrator.objp[4].tolist() == pytest.approx([0.0, 0.02, 0.0])
    assert (calibrator.objp[:, 2] == 0).all()


def test_calibrate_without_corners():
    calibrator = CameraCalibrator()
    with pytest.raises(CalibrationError):
        calibrator.calibrate((640, 480))


def test_find_corners_on_blank_image(tmp_path):
    import cv2

    path = tmp_path / "blank.png"
    cv2.imwrite(str(path), np.full((240, 320, 3), 255, dtype=np.uint8))

    calibrator = CameraCalibrator()
    assert calibrator.find_chessboard_corners([path, tmp_path / "missing.png"]) == 0
    assert calibrator.objpoints == []


def test_to_intrinsics():
    calibrator = CameraCalibrator()
    mtx = np.eye(3)
    dist = np.zeros((1, 5))
    intrinsics = calibrator.to_intrinsics("cam", (640, 480), mtx, dist, 0.12)
    assert intrinsics.camera == "cam"
    assert intrinsics.dist_coeffs.shape == (5,)
    assert intrinsics.avg_reprojection_error == pytest.approx(0.12)
    assert intrinsics.to_dict()["img_size"] == [640, 480]
