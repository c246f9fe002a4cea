"""
Drawing helpers for pruned matches
"""

import numpy as np
import cv2


def draw_matches(img0: np.ndarray, img1: np.ndarray,
                 points0: np.ndarray, points1: np.ndarray,
                 color=(0, 255, 0), thickness: int = 1) -> np.ndarray:
    """
    Draw matches as lines on the two images placed side by side

    Args:
        img0, img1: Query and reference images, grayscale or BGR uint8
        points0, points1: (N, 2) matched pixel coordinates
        color: BGR line colour

    Returns:
        BGR canvas of shape (max(h0, h1), w0 + w1, 3)
    """
    if img0.ndim == 2:
        img0 = cv2.cvtColor(img0, cv2.COLOR_GRAY2BGR)
    if img1.ndim == 2:
        img1 = cv2.cvtColor(img1, cv2.COLOR_GRAY2BGR)

    h0, w0 = img0.shape[:2]
    h1, w1 = img1.shape[:2]
    canvas = np.zeros((max(h0, h1), w0 + w1, 3), dtype=np.uint8)
    canvas[:h0, :w0] = img0
    canvas[:h1, w0:w0 + w1] = img1

    points0 = np.asarray(points0, dtype=np.float64).reshape(-1, 2)
    points1 = np.asarray(points1, dtype=np.float64).reshape(-1, 2)
    for p0, p1 in zip(points0, points1):
        start = (int(round(p0[0])), int(round(p0[1])))
        end = (int(round(p1[0] + w0)), int(round(p1[1])))
        cv2.line(canvas, start, end, color, thickness, cv2.LINE_AA)

    return canvas
