#
# test_math_support.py: unit tests for geometry functions
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests for bbox and polygon processing functions
#

import numpy as np
import pytest


def test_box_conversions():
    from zone_transit_tools import xyxy2xywh, xywh2xyxy, box_center

    assert np.allclose(xyxy2xywh([10, 20, 30, 50]), [10, 20, 20, 30])
    assert np.allclose(xywh2xyxy([10, 20, 20, 30]), [10, 20, 30, 50])
    boxes = np.array([[0, 0, 10, 10], [5, 5, 15, 25]])
    assert np.allclose(xyxy2xywh(boxes), [[0, 0, 10, 10], [5, 5, 10, 20]])
    assert box_center((10, 20, 20, 30)) == (20, 35)


def test_box_iou():
    from zone_transit_tools import box_iou

    a = (0, 0, 10, 10)
    assert box_iou(a, a) == pytest.approx(1)
    assert box_iou(a, (20, 20, 10, 10)) == 0
    assert box_iou(a, (5, 0, 10, 10)) == pytest.approx(1 / 3)
    assert box_iou(a, (5, 0, 10, 10)) == box_iou((5, 0, 10, 10), a)
    assert box_iou((0, 0, 0, 0), (0, 0, 0, 0)) == 0  # zero union

    rng = np.random.default_rng(0)
    for _ in range(50):
        b1 = tuple(rng.uniform(0, 100, 2)) + tuple(rng.uniform(1, 50, 2))
        b2 = tuple(rng.uniform(0, 100, 2)) + tuple(rng.uniform(1, 50, 2))
        iou = box_iou(b1, b2)
        assert 0 <= iou <= 1
        assert iou == pytest.approx(box_iou(b2, b1))


def test_box_iou_batch():
    from zone_transit_tools import box_iou_batch

    boxes_true = np.array([[0, 0, 10, 10], [0, 0, 0, 0]])
    boxes_det = np.array([[0, 0, 10, 10], [5, 0, 15, 10], [20, 20, 30, 30]])
    iou = box_iou_batch(boxes_true, boxes_det)
    assert iou.shape == (2, 3)
    assert np.allclose(iou[0], [1, 1 / 3, 0])
    assert np.allclose(iou[1], [0, 0, 0])


def test_frame_diagonal():
    from zone_transit_tools import frame_diagonal

    assert frame_diagonal((3, 4)) == pytest.approx(5)
    assert frame_diagonal((0, 0)) == pytest.approx(np.sqrt(2))
    assert frame_diagonal((0, 100)) == pytest.approx(np.hypot(1, 100))


def test_point_in_polygon():
    from zone_transit_tools import point_in_polygon

    square = [(0, 0), (10, 0), (10, 10), (0, 10)]
    points = [(5, 5), (15, 5), (-1, 5), (5, -1), (9.9, 9.9), (0, 5), (10, 5), (5, 10)]
    expected = [point_in_polygon(p, square) for p in points]
    assert expected[:5] == [True, False, False, False, True]

    # classification does not depend on vertex list rotation
    for shift in range(1, 4):
        rotated = square[shift:] + square[:shift]
        assert [point_in_polygon(p, rotated) for p in points] == expected

    # non-convex quadrilateral (arrow head)
    arrow = [(0, 0), (10, 5), (0, 10), (3, 5)]
    assert point_in_polygon((5, 5), arrow)
    assert not point_in_polygon((1, 5), arrow)


def test_segments_intersect():
    from zone_transit_tools import segments_intersect

    assert segments_intersect((0, 0), (10, 10), (0, 10), (10, 0))
    assert segments_intersect((0, 0), (10, 0), (10, 0), (10, 10))  # touching end points
    assert not segments_intersect((0, 0), (4, 4), (0, 10), (10, 0))
    assert not segments_intersect((0, 0), (10, 0), (0, 1), (10, 1))  # parallel
    assert not segments_intersect((5, 5), (5, 5), (0, 0), (10, 10))  # zero length


def test_segment_intersects_polygon():
    from zone_transit_tools import segment_intersects_polygon

    square = np.array([(0, 0), (10, 0), (10, 10), (0, 10)])
    assert segment_intersects_polygon((-5, 5), (15, 5), square)
    assert not segment_intersects_polygon((-5, -5), (-1, -1), square)
    assert not segment_intersects_polygon((2, 2), (8, 8), square)  # fully inside
    # only the closing edge (last vertex to first) is crossed
    assert segment_intersects_polygon((-1, 5), (1, 5), square)


def test_shrink_toward_centroid():
    from zone_transit_tools import shrink_toward_centroid

    square = [(0, 0), (10, 0), (10, 10), (0, 10)]
    assert np.allclose(
        shrink_toward_centroid(square, 0.5),
        [(2.5, 2.5), (7.5, 2.5), (7.5, 7.5), (2.5, 7.5)],
    )
    assert np.allclose(shrink_toward_centroid(square, 1), square)

    for factor in [0, -0.5, 1.5]:
        with pytest.raises(ValueError, match="factor must be from 0 to 1"):
            shrink_toward_centroid(square, factor)
