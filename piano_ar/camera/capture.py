import logging

import cv2

logger = logging.getLogger(__name__)

API_PREFERENCES = {
    "any": cv2.CAP_ANY,
    "dshow": cv2.CAP_DSHOW,
    "msmf": cv2.CAP_MSMF,
    "v4l2": cv2.CAP_V4L2,
    "avfoundation": cv2.CAP_AVFOUNDATION,
    "ffmpeg": cv2.CAP_FFMPEG,
}


class VideoSource:
    '''
    Camera (or video file) the frames are captured from.
    '''
    def __init__(self, device_id=0, image_width=None, image_height=None, fps=None, api_preference="any"):
        '''
        :param device_id: camera index, or path/url of a video
        :param image_width: requested frame width in pixels
        :param image_height: requested frame height in pixels
        :param fps: requested frame rate
        :param api_preference: capture backend name, see API_PREFERENCES
        '''
        if api_preference not in API_PREFERENCES:
            raise ValueError(f"Unknown capture api {api_preference}, expected one of {list(API_PREFERENCES)}")

        self.device_id = device_id
        self.cap = cv2.VideoCapture(device_id, API_PREFERENCES[api_preference])

        if not self.cap.isOpened():
            raise RuntimeError("Camera could not be opened")

        if image_width is not None:
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, image_width)
        if image_height is not None:
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, image_height)
        if fps is not None:
            self.cap.set(cv2.CAP_PROP_FPS, fps)

        logger.info(f"Opened video source {device_id} at {self.frame_size[0]}x{self.frame_size[1]}")

    @classmethod
    def from_config(cls, camera_cfg):
        return cls(
            device_id=camera_cfg.get("device_id", 0),
            image_width=camera_cfg.get("image_width"),
            image_height=camera_cfg.get("image_height"),
            fps=camera_cfg.get("fps"),
            api_preference=camera_cfg.get("api_preference", "any"),
        )

    @property
    def frame_size(self):
        return (
            int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def read(self):
        "read the next BGR frame, None if no frame could be grabbed"
        ret, frame = self.cap.read()
        if not ret or frame is None or frame.size == 0:
            return None
        return frame

    def release(self):
        self.cap.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()
