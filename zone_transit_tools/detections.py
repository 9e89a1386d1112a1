#
# detections.py: detection records and object class definitions
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements detection data types, counting modes and detection prefiltering
#

"""
Detections Module Overview
==========================

This module defines the data handed to the tracker on every processing tick: the closed set of
object classes the counter recognizes, the counting modes which restrict the counted classes,
and the `Detection` record itself.

Key Classes:
    - `ObjectClass`: Enumeration of recognized object classes
    - `CountingMode`: Vehicle or pedestrian counting mode with its accepted class set
    - `Detection`: One detected object on one frame

Key Functions:
    - `detections_from_results()`: Convert PySDK-style result dictionaries into `Detection` records,
      dropping unrecognized classes, low-confidence objects and classes outside the counting mode
"""

from enum import Enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple
from . import logger_get
from .math_support import box_center, xyxy2xywh


class ObjectClass(Enum):
    """Object classes recognized by the counter. Values are detector label strings."""

    CAR = "car"
    BUS = "bus"
    TRUCK = "truck"
    MOTORCYCLE = "motorcycle"
    BICYCLE = "bicycle"
    PERSON = "person"

    @classmethod
    def from_label(cls, label) -> Optional["ObjectClass"]:
        """Convert detector label to object class; returns None for unrecognized labels."""
        if isinstance(label, ObjectClass):
            return label
        try:
            return cls(label)
        except ValueError:
            return None


VEHICLE_CLASSES: FrozenSet[ObjectClass] = frozenset(
    [
        ObjectClass.CAR,
        ObjectClass.BUS,
        ObjectClass.TRUCK,
        ObjectClass.MOTORCYCLE,
        ObjectClass.BICYCLE,
    ]
)

PEDESTRIAN_CLASSES: FrozenSet[ObjectClass] = frozenset([ObjectClass.PERSON])


class CountingMode(Enum):
    """Counting mode: restricts which object classes produce count events."""

    VEHICLE = "vehicle"
    PEDESTRIAN = "pedestrian"

    @classmethod
    def normalize(cls, value) -> "CountingMode":
        """Convert mode name to counting mode.

        "pedestrian" and "person" select pedestrian mode; anything else selects vehicle mode.
        """
        if isinstance(value, CountingMode):
            return value
        return (
            CountingMode.PEDESTRIAN
            if value in ("pedestrian", "person")
            else CountingMode.VEHICLE
        )

    @property
    def accepted_classes(self) -> FrozenSet[ObjectClass]:
        """Object classes counted in this mode."""
        if self is CountingMode.PEDESTRIAN:
            return PEDESTRIAN_CLASSES
        return VEHICLE_CLASSES

    def accepts(self, label: ObjectClass) -> bool:
        return label in self.accepted_classes


@dataclass(frozen=True)
class Detection:
    """One classified object detection on one frame.

    Attributes:
        bbox (Tuple[float, float, float, float]): Bounding box ``(x, y, w, h)`` in pixels,
            ``(x, y)`` being the top-left corner.
        label (ObjectClass): Detected object class.
        score (float): Detection confidence in [0, 1].
        obj_idx (int): Index of the source object in the upstream result list, -1 if unknown.
    """

    bbox: Tuple[float, float, float, float]
    label: ObjectClass
    score: float
    obj_idx: int = -1

    @property
    def center(self) -> Tuple[float, float]:
        return box_center(self.bbox)


def detections_from_results(
    results: Iterable[dict],
    *,
    score_threshold: float = 0.0,
    counting_mode: Optional[CountingMode] = None,
) -> List[Detection]:
    """Convert PySDK-style detection results into `Detection` records.

    Each result dictionary must contain `"bbox"` in ``(x1, y1, x2, y2)`` format, `"label"`
    and `"score"`. Objects are dropped when their label is not a recognized `ObjectClass`,
    when their score is below `score_threshold`, or when `counting_mode` is given and
    does not accept their class. Dropped objects never reach the tracker.

    Args:
        results (Iterable[dict]): Detection result dictionaries.
        score_threshold (float, optional): Minimum detection confidence. Default 0.
        counting_mode (CountingMode, optional): When set, keep only classes accepted by this mode.

    Returns:
        List of detections; `obj_idx` of each detection is the index of its source dictionary.
    """
    logger = logger_get()
    detections: List[Detection] = []
    for idx, obj in enumerate(results):
        if "bbox" not in obj:
            continue
        label = ObjectClass.from_label(obj.get("label"))
        if label is None:
            logger.debug(
                f"Dropping detection with unrecognized label {obj.get('label')!r}"
            )
            continue
        score = float(obj.get("score", 0.0))
        if score < score_threshold:
            continue
        if counting_mode is not None and not counting_mode.accepts(label):
            continue
        x, y, w, h = xyxy2xywh(obj["bbox"]).tolist()
        detections.append(Detection((x, y, w, h), label, score, idx))
    return detections
