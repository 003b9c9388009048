from .apriltag import AprilTagDetector, DetectorParams, FiducialLayout, FiducialPosition, load_fiducial_layout
