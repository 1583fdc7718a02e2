"""
media.py
Kiosk camera access through OpenCV.
"""

from __future__ import annotations

import logging

import cv2

from errors import CameraPermissionDenied, DeviceUnavailable

logger = logging.getLogger(__name__)


class CameraHandle:
    def __init__(self, capture: "cv2.VideoCapture", index: int):
        self.capture = capture
        self.index = index

    def capture_still(self) -> bytes:
        """Grab one frame and return it PNG-encoded."""
        ok, frame = self.capture.read()
        if not ok or frame is None:
            raise DeviceUnavailable(f"Camera {self.index} returned no frame.")
        ok, buf = cv2.imencode(".png", frame)
        if not ok:
            raise DeviceUnavailable("Could not encode camera frame.")
        return buf.tobytes()

    def release(self) -> None:
        self.capture.release()


class Camera:
    """Opens the camera at `index`; one handle at a time."""

    def __init__(self, index: int = 0):
        self.index = index

    def request_camera_access(self) -> CameraHandle:
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"No camera found at index {self.index}.")
        # An opened device that yields nothing is what a blocked camera looks like
        ok, _ = capture.read()
        if not ok:
            capture.release()
            raise CameraPermissionDenied(f"Camera {self.index} refused to deliver frames.")
        logger.info("Camera %d acquired", self.index)
        return CameraHandle(capture, self.index)

    def release_camera_access(self, handle: CameraHandle) -> None:
        handle.release()
        logger.info("Camera %d released", handle.index)
