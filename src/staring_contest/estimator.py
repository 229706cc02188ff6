"""Eye openness estimation from face landmarks (eye aspect ratio)."""

from __future__ import annotations

from typing import Sequence

import numpy as np

# MediaPipe Face Mesh eye contours, ordered [p0..p5]:
# p0/p3 are the horizontal corners, (p1, p5) and (p2, p4) the vertical pairs.
LEFT_EYE = (33, 160, 158, 133, 153, 144)
RIGHT_EYE = (362, 385, 387, 263, 373, 380)


class InsufficientLandmarks(ValueError):
    """The landmark set does not contain the points needed for a score."""


class DegenerateEyeContour(InsufficientLandmarks):
    """The eye corners coincide or a contour point is not finite."""


def _as_points(landmarks) -> np.ndarray:
    try:
        points = np.asarray(landmarks, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InsufficientLandmarks(f"landmarks are not numeric: {e}") from e

    if points.ndim != 2 or points.shape[1] < 2:
        raise InsufficientLandmarks(
            f"expected an (N, 2) or (N, 3) landmark array, got shape {points.shape}"
        )
    return points[:, :2]


def _contour_points(points: np.ndarray, contour: Sequence[int]) -> np.ndarray:
    if len(contour) != 6:
        raise ValueError(f"eye contour must have 6 indices, got {len(contour)}")

    highest = max(contour)
    if min(contour) < 0 or highest >= len(points):
        raise InsufficientLandmarks(
            f"eye contour needs landmark {highest}, only {len(points)} available"
        )

    eye = points[list(contour)]
    if not np.all(np.isfinite(eye)):
        raise DegenerateEyeContour("eye contour has non-finite coordinates")
    return eye


def eye_aspect_ratio(landmarks, contour: Sequence[int]) -> float:
    """Compute EAR for one eye.

    EAR = (|p1 - p5| + |p2 - p4|) / (2 * |p0 - p3|)

    Open eyes sit around 0.25-0.35 for typical faces and drop towards 0 as
    the lids close. Only x/y are used; a z column is ignored.

    Raises:
        InsufficientLandmarks: an index in `contour` is out of range.
        DegenerateEyeContour: the corners coincide (zero width).
    """
    p = _contour_points(_as_points(landmarks), contour)

    vertical = np.linalg.norm(p[1] - p[5]) + np.linalg.norm(p[2] - p[4])
    horizontal = np.linalg.norm(p[0] - p[3])
    if horizontal == 0.0:
        raise DegenerateEyeContour("eye corners coincide")

    return float(vertical / (2.0 * horizontal))


def openness(
    landmarks,
    left: Sequence[int] = LEFT_EYE,
    right: Sequence[int] = RIGHT_EYE,
) -> float:
    """Mean EAR of both eyes, the per-frame openness score."""
    points = _as_points(landmarks)
    return (eye_aspect_ratio(points, left) + eye_aspect_ratio(points, right)) / 2.0
