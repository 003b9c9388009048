import logging
from dataclasses import dataclass, field
from typing import Dict, List

import cv2
import numpy as np
import yaml
from pyapriltags import Detector

logger = logging.getLogger(__name__)


@dataclass
class FiducialPosition:
    id: int
    # offset from the keyboard centre to the marker centre along the keyboard, rightward positive
    x_offset: float
    size: float

    def get_corners(self) -> np.ndarray:
        '''
        Corners of the marker in keyboard coordinates, in detector order
        (bottom-left, bottom-right, top-right, top-left as seen by the player).
        The keyboard frame has x to the right, y up and z toward the player.
        :return: 4x3 array
        '''
        h = self.size / 2.0
        x = self.x_offset
        return np.array([
            [x - h, 0.0,  h],
            [x + h, 0.0,  h],
            [x + h, 0.0, -h],
            [x - h, 0.0, -h]
        ], dtype=np.float64)


@dataclass
class DetectorParams:
    nthreads: int = 2
    quad_decimate: float = 1.0
    quad_sigma: float = 0.0
    refine_edges: int = 1
    decode_sharpening: float = 0.25
    max_hamming: int = 1


@dataclass
class FiducialLayout:
    family: str
    fiducials: List[FiducialPosition]
    detector: DetectorParams = field(default_factory=DetectorParams)

    @property
    def ids(self):
        return [f.id for f in self.fiducials]

    def by_id(self) -> Dict[int, FiducialPosition]:
        return {f.id: f for f in self.fiducials}


def load_fiducial_layout(path) -> FiducialLayout:
    '''
    Load the marker family, marker positions and detector tuning from a yaml file.
    '''
    with open(path, "r") as f:
        data = yaml.safe_load(f)["fiducials"]

    size = float(data["size"])
    fiducials = [
        FiducialPosition(
            id=int(m["id"]),
            x_offset=float(m["x_offset"]),
            size=float(m.get("size", size))
        )
        for m in data["markers"]
    ]

    ids = [f.id for f in fiducials]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate marker ids in {path}: {ids}")

    return FiducialLayout(
        family=data.get("family", "tag25h9"),
        fiducials=fiducials,
        detector=DetectorParams(**data.get("detector", {}))
    )


# AprilTag Detector Class
class AprilTagDetector:
    def __init__(self, family="tag25h9", allowed_ids=None, params: DetectorParams = None):
        params = params or DetectorParams()
        self.detector = Detector(
            families=family,
            nthreads=params.nthreads,
            quad_decimate=params.quad_decimate,
            quad_sigma=params.quad_sigma,
            refine_edges=params.refine_edges,
            decode_sharpening=params.decode_sharpening,
        )
        self.allowed_ids = allowed_ids
        self.max_hamming = params.max_hamming

    @classmethod
    def from_layout(cls, layout: FiducialLayout):
        return cls(family=layout.family, allowed_ids=layout.ids, params=layout.detector)

    # Detect AprilTags in the given frame
    def detect(self, frame):
        gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        detections = self.detector.detect(gray)

        if self.allowed_ids is not None:
            detections = [d for d in detections if d.tag_id in self.allowed_ids]

        detections = [d for d in detections if d.hamming <= self.max_hamming]

        return detections
