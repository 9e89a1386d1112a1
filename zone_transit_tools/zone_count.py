#
# zone_count.py: polygon zone transit counting support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements classes for counting tracked objects transiting a polygon zone
#

"""
Zone Count Module Overview
==========================

This module decides, exactly once per tracked object, whether and as what class the object is
counted as having transited a four-sided counting zone.

Key Features:
    - **Normalized Zone Definition**: Zone vertices are stored as fractions of the frame size and
      converted to pixels on every tick, so the zone follows frame resolution changes
    - **Hit Area**: The counting polygon is the zone shrunk toward its centroid, which reduces
      false hits from adjacent lanes
    - **Dwell and Debounce**: An object must spend at least two ticks in the zone and then be seen
      outside for two consecutive ticks before it is counted
    - **Boundary Crossing Detection**: A jump between two samples which crosses the zone without
      landing inside is still detected as a transit
    - **Class Voting**: The counted class is resolved from confidence-weighted class votes,
      favoring evidence observed inside the zone
    - **Counting Modes**: Vehicle or pedestrian mode restricts which classes are counted
    - **Finalization**: Objects lost right after entering the zone are counted when their track
      is removed

Key Classes:
    - `CountingZone`: Four-vertex zone in normalized coordinates
    - `CountEvent`: One counted object transit
    - `TransitCounts`: Per-class count tallies
    - `ZoneTransitPolicy`: Per-tick counting policy over confirmed tracks

Key Functions:
    - `load_zone()`: Parse persisted zone geometry, falling back to the previous valid zone
"""

import numpy as np, yaml
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from . import logger_get
from .detections import CountingMode, ObjectClass
from .object_tracker import Track
from .math_support import (
    point_distance,
    point_in_polygon,
    segment_intersects_polygon,
    shrink_toward_centroid,
)

DEFAULT_ZONE_VERTICES = [(0.35, 0.3), (0.65, 0.3), (0.65, 0.7), (0.35, 0.7)]


class CountingZone:
    """Four-sided counting zone defined in normalized frame coordinates.

    Attributes:
        vertices (np.ndarray): ``(4, 2)`` array of ``[x, y]`` vertex coordinates,
            expressed as fractions of frame width and height.
    """

    num_vertices = 4

    def __init__(self, vertices: Union[np.ndarray, Sequence]):
        """
        Constructor.

        Args:
            vertices (np.ndarray or Sequence): Four ``[x, y]`` pairs or ``{"x": .., "y": ..}`` dicts.

        Raises:
            ValueError: If the geometry does not have exactly four finite vertices.
        """
        points = [
            (v["x"], v["y"]) if isinstance(v, dict) else tuple(v) for v in vertices
        ]
        if len(points) != self.num_vertices or any(len(p) != 2 for p in points):
            raise ValueError(
                f"zone must have exactly {self.num_vertices} vertices of two coordinates"
            )
        try:
            coords = np.array(points, dtype=float)
        except (TypeError, ValueError):
            raise ValueError("zone vertex coordinates must be numbers")
        if not np.all(np.isfinite(coords)):
            raise ValueError("zone vertex coordinates must be finite")
        self._vertices = coords

    @classmethod
    def default(cls) -> "CountingZone":
        return cls(DEFAULT_ZONE_VERTICES)

    @property
    def vertices(self) -> np.ndarray:
        return self._vertices.copy()

    def to_pixels(self, frame_wh: Tuple[int, int]) -> np.ndarray:
        """Convert zone to pixel coordinates for a frame of given (width, height)."""
        w = frame_wh[0] or 1
        h = frame_wh[1] or 1
        return self._vertices * np.array([w, h], dtype=float)

    def to_list(self) -> List[dict]:
        """Zone in persisted form: list of ``{"x": .., "y": ..}`` dicts."""
        return [{"x": float(x), "y": float(y)} for x, y in self._vertices]

    def __eq__(self, other):
        if not isinstance(other, CountingZone):
            return NotImplemented
        return np.array_equal(self._vertices, other._vertices)

    def __repr__(self):
        return f"CountingZone({self._vertices.tolist()})"


def load_zone(
    data: Union[str, Sequence, np.ndarray, CountingZone, None],
    fallback: Optional[CountingZone] = None,
) -> CountingZone:
    """Load zone geometry from its persisted form.

    Malformed geometry (not exactly four vertices, non-numeric or non-finite coordinates,
    unparsable text) is rejected: a warning is logged and the fallback zone is returned.

    Args:
        data: JSON/YAML text, a sequence of four ``[x, y]`` pairs or ``{"x", "y"}`` dicts,
            or a `CountingZone`.
        fallback (CountingZone, optional): Previous valid zone. If None, the default zone is used.

    Returns:
        Loaded zone, or the fallback zone when the data is malformed.
    """
    if isinstance(data, CountingZone):
        return data
    fallback = CountingZone.default() if fallback is None else fallback
    try:
        if isinstance(data, str):
            data = yaml.safe_load(data)
        if data is None or isinstance(data, (dict, str)):
            raise ValueError("zone must be a list of vertices")
        return CountingZone(data)
    except (ValueError, TypeError, KeyError, yaml.YAMLError) as e:
        logger_get().warning(f"Rejected zone geometry ({e}); keeping {fallback}")
        return fallback


@dataclass(frozen=True)
class CountEvent:
    """One counted object transit.

    Attributes:
        label (ObjectClass): Resolved class of the counted object.
        track_id (int): ID of the track which produced the event.
    """

    label: ObjectClass
    track_id: int

    def to_dict(self) -> dict:
        return {"label": self.label.value, "track_id": self.track_id}


class TransitCounts:
    """Holds per-class counts of zone transits.

    Attributes:
        for_class (Dict[ObjectClass, int]): Number of counted transits for every object class.
    """

    def __init__(self):
        self.for_class: Dict[ObjectClass, int] = {c: 0 for c in ObjectClass}

    @property
    def total(self) -> int:
        return sum(self.for_class.values())

    def total_for_mode(self, mode: CountingMode) -> int:
        """Sum of counts over the classes accepted by the given counting mode."""
        return sum(self.for_class[c] for c in mode.accepted_classes)

    def add(self, event: CountEvent):
        self.for_class[event.label] += 1

    def __eq__(self, other):
        if not isinstance(other, TransitCounts):
            return NotImplemented
        return self.for_class == other.for_class

    def __iadd__(self, other):
        if not isinstance(other, TransitCounts):
            return NotImplemented
        for c, n in other.for_class.items():
            self.for_class[c] += n
        return self

    def to_dict(self):
        ret = {c.value: n for c, n in self.for_class.items()}
        ret["total"] = self.total
        return ret


class ZoneTransitPolicy:
    """Counting policy which turns confirmed tracks into zone transit count events.

    On every tick, for each confirmed track matched on that tick:

    1. The counting polygon is the zone in pixels, shrunk toward its centroid by `hit_area_factor`.
    2. The track is stationary if its center moved less than `stationary_threshold` pixels.
    3. A stationary track inside the polygon is skipped: objects idling at the zone edge
       do not accumulate dwell.
    4. A track inside the polygon, or whose last movement segment crossed the polygon boundary
       (a boundary crossing), gets an in-zone class vote and its outside counter is cleared.
    5. A track outside the polygon increments its outside counter. When the counter reaches
       `exit_frames` and the track either dwelled at least `min_frames_in_zone` ticks or made
       a boundary crossing, the winning class is resolved and the track is counted.

    `finalize()` applies the same dwell/crossing condition to tracks removed by the tracker,
    so objects lost right after entering the zone are still counted once.

    A resolved class not accepted by the counting mode is dropped silently; the track is
    still marked as counted.
    """

    def __init__(
        self,
        zone: Optional[CountingZone] = None,
        *,
        counting_mode: CountingMode = CountingMode.VEHICLE,
        hit_area_factor: float = 1.0,
        stationary_threshold: float = 2.0,
        exit_frames: int = 2,
        min_frames_in_zone: int = 2,
    ):
        """
        Constructor.

        Args:
            zone (CountingZone, optional): Counting zone. Default zone is used if None.
            counting_mode (CountingMode, optional): Counting mode. Default vehicle mode.
            hit_area_factor (float, optional): Zone shrink factor in (0, 1]. Default 1.0 (no shrinking).
            stationary_threshold (float, optional): Movement in pixels below which a track is stationary. Default 2.0.
            exit_frames (int, optional): Consecutive outside ticks needed to count. Default 2.
            min_frames_in_zone (int, optional): In-zone ticks needed to count without a boundary crossing. Default 2.
        """
        if exit_frames < 1:
            raise ValueError("exit_frames must be a positive integer")
        if min_frames_in_zone < 1:
            raise ValueError("min_frames_in_zone must be a positive integer")
        self.zone = CountingZone.default() if zone is None else zone
        self.counting_mode = CountingMode.normalize(counting_mode)
        self.hit_area_factor = hit_area_factor
        self._stationary_threshold = stationary_threshold
        self._exit_frames = exit_frames
        self._min_frames_in_zone = min_frames_in_zone

    @property
    def hit_area_factor(self) -> float:
        return self._hit_area_factor

    @hit_area_factor.setter
    def hit_area_factor(self, value: float):
        if not 0.0 < value <= 1.0:
            raise ValueError("hit_area_factor must be from 0 to 1")
        self._hit_area_factor = value

    def counting_polygon(self, frame_wh: Tuple[int, int]) -> np.ndarray:
        """Effective counting polygon in pixels for a frame of given (width, height)."""
        return shrink_toward_centroid(
            self.zone.to_pixels(frame_wh), self._hit_area_factor
        )

    def update(
        self, tracks: Iterable[Track], frame_wh: Tuple[int, int]
    ) -> List[CountEvent]:
        """
        Apply counting rules to tracks of the current tick.

        Only confirmed tracks matched on this tick and not counted yet are considered; other
        tracks are skipped.

        Args:
            tracks (Iterable[Track]): Active tracks.
            frame_wh (Tuple[int, int]): Current frame (width, height).

        Returns:
            Count events produced on this tick.
        """
        polygon = self.counting_polygon(frame_wh)
        events: List[CountEvent] = []

        for track in tracks:
            if not track.is_confirmed or track.lost_age != 0 or track.counted:
                continue

            center = track.center
            previous = track.previous_center
            stationary = (
                previous is not None
                and point_distance(center, previous) < self._stationary_threshold
            )
            in_zone = point_in_polygon(center, polygon)
            if in_zone and stationary:
                continue

            crossed = (
                not in_zone
                and previous is not None
                and segment_intersects_polygon(previous, center, polygon)
            )

            if in_zone or crossed:
                track.vote_zone(track.label, track.score)
                if crossed:
                    track.boundary_crossed = True
                track.frames_outside_zone = 0
            else:
                track.frames_outside_zone += 1
                if track.frames_outside_zone >= self._exit_frames:
                    event = self._count(track)
                    if event is not None:
                        events.append(event)

        return events

    def finalize(self, track: Track) -> List[CountEvent]:
        """
        Make the final counting decision for a track removed by the tracker.

        Args:
            track (Track): Removed track.

        Returns:
            List with at most one count event.
        """
        event = self._count(track)
        return [] if event is None else [event]

    def _count(self, track: Track) -> Optional[CountEvent]:
        """Count the track once if it dwelled in the zone or crossed its boundary."""
        if track.counted:
            return None
        dwelled = track.frames_in_zone >= self._min_frames_in_zone
        if not dwelled and not track.boundary_crossed:
            return None

        winner = track.resolve_winning_class()
        track.counted = True
        if not self.counting_mode.accepts(winner):
            logger_get().debug(
                f"Track {track.track_id} resolved as {winner.value}, "
                f"not counted in {self.counting_mode.value} mode"
            )
            return None

        logger_get().info(f"Track {track.track_id} counted as {winner.value}")
        return CountEvent(winner, track.track_id)
