"""Shared fixtures for the tests"""

import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from piano_ar.camera import CameraIntrinsics
from piano_ar.detection import load_fiducial_layout
from piano_ar.geometry import KeyboardPose


ROOT = Path(__file__).parent.parent  # repo root
CONFIG_DIR = ROOT / "configs"

# camera looking down at the keyboard from the player's side
TRUE_RVEC = np.array([[-1.95], [0.0], [0.0]])
TRUE_TVEC = np.array([[0.02], [-0.05], [0.9]])


def _determine_can_use_wgpu_lib():
    # run in a subprocess, a missing driver can take the whole process down
    code = "import wgpu.utils; wgpu.utils.get_default_device(); print('ok')"
    result = subprocess.run(
        [sys.executable, "-c", code],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        universal_newlines=True,
    )
    return "ok" in result.stdout.strip().splitlines()[-1:]


can_use_wgpu_lib = _determine_can_use_wgpu_lib()


def make_detection(tag_id, corners):
    corners = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    return SimpleNamespace(
        tag_id=tag_id,
        corners=corners,
        center=corners.mean(axis=0),
        hamming=0,
    )


def project_detections(layout, intrinsics, rvec=TRUE_RVEC, tvec=TRUE_TVEC, ids=None):
    "fake detections of the layout's markers as seen from the given pose"
    detections = []
    for fiducial in layout.fiducials:
        if ids is not None and fiducial.id not in ids:
            continue
        image_points, _ = cv2.projectPoints(
            fiducial.get_corners(), rvec, tvec, intrinsics.camera_matrix, intrinsics.dist_coeffs
        )
        detections.append(make_detection(fiducial.id, image_points.reshape(-1, 2)))
    return detections


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(
        camera_matrix=np.array([
            [800.0, 0.0, 640.0],
            [0.0, 800.0, 360.0],
            [0.0, 0.0, 1.0],
        ]),
        dist_coeffs=np.zeros(5),
        image_size=(1280, 720),
        camera="test_camera",
    )


@pytest.fixture
def layout():
    return load_fiducial_layout(CONFIG_DIR / "fiducials.yaml")


@pytest.fixture
def true_pose():
    return KeyboardPose.from_vectors(TRUE_RVEC, TRUE_TVEC, marker_ids=(0, 1, 2, 3))


@pytest.fixture
def detections(layout, intrinsics):
    return project_detections(layout, intrinsics)


@pytest.fixture
def blank_frame():
    return np.zeros((720, 1280, 3), dtype=np.uint8)
