#
# math_support.py: geometry utilities for boxes and counting zones
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements bounding box and polygon functions used by tracking and zone counting
#

# MIT License
#
# Copyright (c) 2022 Roboflow
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
Math Support Module Overview
===========================

This module provides the geometric primitives used by the tracker and the zone counting policy.
All functions are pure: they never keep state between calls.

Key Features:
    - **Bounding Box Operations**: IoU computation, center calculation, coordinate conversions
    - **Polygon Containment**: Ray-casting parity test for points against zone polygons
    - **Segment Crossing**: Parametric segment/polygon-edge intersection for fast-moving objects
    - **Zone Scaling**: Shrinking a polygon toward its centroid to get a tighter counting area

Conventions:
    - Boxes passed to `box_iou()` and `box_center()` are `(x, y, w, h)` with `(x, y)` the top-left corner
    - Boxes passed to `box_iou_batch()` are `(x1, y1, x2, y2)` arrays
    - Polygons are `(N, 2)` arrays (or sequences) of `[x, y]` vertices
"""

import math
import numpy as np
from typing import Sequence, Tuple, Union

Point = Tuple[float, float]


def xyxy2xywh(x: np.ndarray) -> np.ndarray:
    """Convert ``(x1, y1, x2, y2)`` boxes to top-left ``(x, y, w, h)`` format."""
    y = np.array(x, dtype=float)
    y[..., 2] = y[..., 2] - y[..., 0]  # width
    y[..., 3] = y[..., 3] - y[..., 1]  # height
    return y


def xywh2xyxy(x: np.ndarray) -> np.ndarray:
    """Convert top-left ``(x, y, w, h)`` boxes to ``(x1, y1, x2, y2)`` format."""
    y = np.array(x, dtype=float)
    y[..., 2] = y[..., 0] + y[..., 2]  # right
    y[..., 3] = y[..., 1] + y[..., 3]  # bottom
    return y


def box_center(box: Sequence[float]) -> Point:
    """Return the centroid of a top-left ``(x, y, w, h)`` box."""
    x, y, w, h = box
    return (x + w / 2, y + h / 2)


def box_iou(box_a: Sequence[float], box_b: Sequence[float]) -> float:
    """Compute intersection over union of two ``(x, y, w, h)`` boxes.

    Args:
        box_a (Sequence[float]): First box.
        box_b (Sequence[float]): Second box.

    Returns:
        IoU value in [0, 1]; 0 when the union area is not positive.
    """
    return float(box_iou_batch(xywh2xyxy(box_a), xywh2xyxy(box_b))[0, 0])


def box_iou_batch(boxes_true: np.ndarray, boxes_detection: np.ndarray) -> np.ndarray:
    """Compute pairwise IoU between two sets of boxes.

    Args:
        boxes_true (np.ndarray): Boxes ``(N, 4)`` in ``(x1, y1, x2, y2)`` format.
        boxes_detection (np.ndarray): Boxes ``(M, 4)`` in ``(x1, y1, x2, y2)`` format.

    Returns:
        IoU matrix of shape ``(N, M)``; pairs with zero union get 0.
    """

    def box_area(box):
        return (box[2] - box[0]) * (box[3] - box[1])

    boxes_true = np.asarray(boxes_true, dtype=float).reshape(-1, 4)
    boxes_detection = np.asarray(boxes_detection, dtype=float).reshape(-1, 4)

    area_true = box_area(boxes_true.T)
    area_detection = box_area(boxes_detection.T)

    top_left = np.maximum(boxes_true[:, None, :2], boxes_detection[:, :2])
    bottom_right = np.minimum(boxes_true[:, None, 2:], boxes_detection[:, 2:])

    area_inter = np.prod(np.clip(bottom_right - top_left, a_min=0, a_max=None), 2)
    area_union = area_true[:, None] + area_detection - area_inter
    return np.divide(
        area_inter,
        area_union,
        out=np.zeros_like(area_inter),
        where=area_union > 0,
    )


def point_distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def frame_diagonal(frame_wh: Tuple[float, float]) -> float:
    """Length of the frame diagonal; zero dimensions are treated as 1."""
    w = frame_wh[0] or 1
    h = frame_wh[1] or 1
    return math.hypot(w, h)


def point_in_polygon(point: Point, polygon: Union[np.ndarray, Sequence]) -> bool:
    """Test whether a point lies inside a polygon using ray-casting parity.

    A horizontal ray is cast from the point; an odd number of edge crossings means "inside".
    An edge is crossed when it straddles the ray in the half-open sense
    ``(yi > py) != (yj > py)``, so points exactly on an edge are classified consistently
    regardless of the vertex list rotation.

    Args:
        point (Point): ``(x, y)`` point to test.
        polygon (np.ndarray or Sequence): Polygon vertices ``(N, 2)``.

    Returns:
        True if the point is inside the polygon.
    """
    px, py = point
    pts = np.asarray(polygon, dtype=float)
    inside = False
    j = len(pts) - 1
    for i in range(len(pts)):
        xi, yi = pts[i]
        xj, yj = pts[j]
        if (yi > py) != (yj > py):
            if px < (xj - xi) * (py - yi) / (yj - yi) + xi:
                inside = not inside
        j = i
    return inside


def segments_intersect(p0: Point, p1: Point, p2: Point, p3: Point) -> bool:
    """Return ``True`` if segment (p0, p1) intersects segment (p2, p3).

    Uses the two-line parametric form: the segments intersect when both line parameters
    ``s`` and ``t`` fall within [0, 1]. Parallel and zero-length segments make the
    denominator vanish and are reported as non-intersecting.
    """
    s1_x, s1_y = p1[0] - p0[0], p1[1] - p0[1]
    s2_x, s2_y = p3[0] - p2[0], p3[1] - p2[1]
    denom = -s2_x * s1_y + s1_x * s2_y
    if denom == 0:
        return False
    s = (-s1_y * (p0[0] - p2[0]) + s1_x * (p0[1] - p2[1])) / denom
    t = (s2_x * (p0[1] - p2[1]) - s2_y * (p0[0] - p2[0])) / denom
    return 0 <= s <= 1 and 0 <= t <= 1


def segment_intersects_polygon(
    p1: Point, p2: Point, polygon: Union[np.ndarray, Sequence]
) -> bool:
    """Test whether segment (p1, p2) crosses any edge of a polygon.

    Every edge is checked, including the closing edge from the last vertex back to the first.

    Args:
        p1 (Point): Segment start.
        p2 (Point): Segment end.
        polygon (np.ndarray or Sequence): Polygon vertices ``(N, 2)``.

    Returns:
        True if any polygon edge intersects the segment.
    """
    pts = np.asarray(polygon, dtype=float)
    n = len(pts)
    for i in range(n):
        if segments_intersect(p1, p2, tuple(pts[i]), tuple(pts[(i + 1) % n])):
            return True
    return False


def shrink_toward_centroid(
    polygon: Union[np.ndarray, Sequence], factor: float
) -> np.ndarray:
    """Scale polygon vertices toward the polygon centroid.

    The centroid is the mean of the vertices. Every vertex ``p`` is moved to
    ``c + (p - c) * factor``, so factor 1 keeps the polygon unchanged.

    Args:
        polygon (np.ndarray or Sequence): Polygon vertices ``(N, 2)``.
        factor (float): Scale factor in (0, 1].

    Returns:
        Scaled polygon as a float ``(N, 2)`` array.

    Raises:
        ValueError: If ``factor`` is outside (0, 1].
    """
    if not 0.0 < factor <= 1.0:
        raise ValueError("factor must be from 0 to 1")
    pts = np.asarray(polygon, dtype=float)
    centroid = pts.mean(axis=0)
    return centroid + (pts - centroid) * factor
