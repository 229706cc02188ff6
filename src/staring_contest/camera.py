"""Camera acquisition via OpenCV."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np

try:
    import cv2
except ImportError:
    cv2 = None

logger = logging.getLogger("staring_contest.camera")


class AcquisitionError(RuntimeError):
    """The camera could not be opened (missing, busy, or permission denied)."""


class CameraStream:
    """An open capture device. Frames are BGR, as OpenCV delivers them."""

    def __init__(self, capture, index: int):
        self._capture = capture
        self.index = index

    @property
    def active(self) -> bool:
        return self._capture is not None

    def read(self) -> Optional[np.ndarray]:
        """Grab the latest frame, or None if the device produced nothing."""
        if self._capture is None:
            return None
        ret, frame = self._capture.read()
        if not ret:
            return None
        return frame

    def stop(self):
        """Release the device. Idempotent."""
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()
            logger.debug("Camera %d released", self.index)


class CameraSource:
    """Opens and releases `CameraStream`s for one device index."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480):
        self.index = index
        self.width = width
        self.height = height

    def _open(self):
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            return None
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        return capture

    async def acquire(self) -> CameraStream:
        """Open the device off-loop (opening can block for a second or more)."""
        if cv2 is None:
            raise AcquisitionError(
                "opencv-python is required for camera capture. Install with: pip install opencv-python"
            )

        try:
            capture = await asyncio.to_thread(self._open)
        except Exception as e:
            raise AcquisitionError(f"Could not open camera {self.index}: {e}") from e

        if capture is None:
            raise AcquisitionError(
                f"Could not open camera {self.index} (device missing, busy, or permission denied)"
            )

        logger.info("Camera %d opened at %dx%d", self.index, self.width, self.height)
        return CameraStream(capture, self.index)

    def release(self, stream: CameraStream):
        stream.stop()
