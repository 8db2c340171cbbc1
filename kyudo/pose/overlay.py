"""Skeleton overlay rendering on an OpenCV image surface."""

import logging
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from kyudo.pose.base import Landmark, LandmarkSet, PoseLandmark
from kyudo.pose.geometry import estimated_mouth_height

logger = logging.getLogger(__name__)

# BGR colors
CONNECTION_COLOR = (180, 255, 0)
LANDMARK_COLOR = (96, 64, 255)
HIGHLIGHT_COLOR = (50, 220, 255)
HIGHLIGHT_EDGE_COLOR = (255, 255, 255)
MONOMI_COLOR = (248, 189, 56)
KUCHIWARI_HIGH_COLOR = (22, 115, 249)
KUCHIWARI_LOW_COLOR = (53, 230, 163)
LABEL_COLOR = (22, 115, 249)
FRAME_LABEL_COLOR = (90, 90, 90)

# Tolerance below the estimated mouth line, as a fraction of the frame height.
# A wrist inside it still counts as a high kuchiwari.
KUCHIWARI_MARGIN = 0.02

HIGHLIGHTED_JOINTS = (
    PoseLandmark.NOSE,
    PoseLandmark.LEFT_EAR,
    PoseLandmark.RIGHT_EAR,
    PoseLandmark.LEFT_SHOULDER,
    PoseLandmark.RIGHT_SHOULDER,
    PoseLandmark.LEFT_ELBOW,
    PoseLandmark.RIGHT_ELBOW,
    PoseLandmark.LEFT_WRIST,
    PoseLandmark.RIGHT_WRIST,
    PoseLandmark.LEFT_HIP,
    PoseLandmark.RIGHT_HIP,
)

# Skeleton graph (MediaPipe pose connections)
POSE_CONNECTIONS: Sequence[Tuple[int, int]] = (
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8),
    (9, 10),
    (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    (11, 23), (12, 24), (23, 24),
    (23, 25), (24, 26), (25, 27), (26, 28), (27, 29), (28, 30),
    (29, 31), (30, 32), (27, 31), (28, 32),
)

FONT = cv2.FONT_HERSHEY_SIMPLEX


def _to_pixel(point: Landmark, width: int, height: int) -> Tuple[int, int]:
    return int(round(point.x * width)), int(round(point.y * height))


def _draw_dashed_hline(
    surface: np.ndarray,
    y: int,
    width: int,
    color: Tuple[int, int, int],
    dash: int = 4,
    thickness: int = 1,
) -> None:
    for x in range(0, width, dash * 2):
        cv2.line(surface, (x, y), (min(x + dash, width), y), color, thickness, cv2.LINE_AA)


def render_overlay(
    surface: np.ndarray,
    landmarks: Optional[LandmarkSet],
    width: int,
    height: int,
) -> None:
    """
    Draw the kyudo skeleton overlay in place.

    Draws the connection graph, every landmark, the highlighted key
    joints, the ear line (monomi) and a dashed horizontal line at the
    right wrist height (kuchiwari), colored against the estimated mouth
    height. Elements whose landmarks are missing are skipped.

    Args:
        surface: BGR image to draw on.
        landmarks: Landmarks of the frame (None draws nothing).
        width: Surface width in pixels.
        height: Surface height in pixels.
    """
    if landmarks is None or len(landmarks) == 0:
        return

    for start, end in POSE_CONNECTIONS:
        a, b = landmarks.get(start), landmarks.get(end)
        if a is None or b is None:
            continue
        cv2.line(surface, _to_pixel(a, width, height), _to_pixel(b, width, height),
                 CONNECTION_COLOR, 2, cv2.LINE_AA)

    for _, point in landmarks.items():
        cv2.circle(surface, _to_pixel(point, width, height), 4, LANDMARK_COLOR, -1, cv2.LINE_AA)

    for joint in HIGHLIGHTED_JOINTS:
        point = landmarks.get(joint)
        if point is None:
            continue
        center = _to_pixel(point, width, height)
        cv2.circle(surface, center, 6, HIGHLIGHT_COLOR, -1, cv2.LINE_AA)
        cv2.circle(surface, center, 6, HIGHLIGHT_EDGE_COLOR, 1, cv2.LINE_AA)

    l_ear = landmarks.get(PoseLandmark.LEFT_EAR)
    r_ear = landmarks.get(PoseLandmark.RIGHT_EAR)
    if l_ear is not None and r_ear is not None:
        r_px = _to_pixel(r_ear, width, height)
        cv2.line(surface, _to_pixel(l_ear, width, height), r_px, MONOMI_COLOR, 2, cv2.LINE_AA)
        cv2.putText(surface, "monomi", (r_px[0] + 6, r_px[1] - 4), FONT, 0.4,
                    MONOMI_COLOR, 1, cv2.LINE_AA)

    wrist = landmarks.get(PoseLandmark.RIGHT_WRIST)
    mouth_y = estimated_mouth_height(landmarks)
    if wrist is not None:
        wrist_px = _to_pixel(wrist, width, height)
        if mouth_y is not None and wrist.y < mouth_y + KUCHIWARI_MARGIN:
            color = KUCHIWARI_HIGH_COLOR
        else:
            color = KUCHIWARI_LOW_COLOR
        _draw_dashed_hline(surface, wrist_px[1], width, color)
        cv2.putText(surface, "kuchiwari", (wrist_px[0] + 8, wrist_px[1] - 4), FONT, 0.4,
                    LABEL_COLOR, 1, cv2.LINE_AA)


def draw_frame_label(surface: np.ndarray, index: int) -> None:
    """Draw a faint frame counter in the top-left corner."""
    cv2.putText(surface, f"FRAME {index}", (12, 20), FONT, 0.45, FRAME_LABEL_COLOR, 1, cv2.LINE_AA)


def fill_placeholder(surface: np.ndarray, color: Tuple[int, int, int] = (30, 15, 10)) -> None:
    """Fill the surface with the background used when no video frame is available."""
    surface[:] = color
