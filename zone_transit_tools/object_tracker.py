#
# object_tracker.py: multi-object tracker
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements classes for multi-object tracking with class voting
#

"""
Object Tracker Module Overview
==============================

Implements a lightweight multi-object tracker which turns per-frame detections into stable
object identities suitable for zone transit counting.

Key Features:
    - **Persistent Object Identity**: Sequential track IDs which are never reused
    - **Two-Stage Association**: IoU matching followed by normalized center-distance matching,
      which keeps identity when the frame rate is low or objects move fast
    - **Track Lifecycle Management**: Tentative/confirmed states, lost-age based removal
    - **Class Voting**: Confidence-weighted class evidence collected over the whole track life
    - **Lifecycle Events**: Confirmation and removal are reported as returned events,
      not callbacks

Typical Usage:
    1. Create an `ObjectTracker` instance with desired tracking parameters
    2. Call `update()` with each frame's detections and the frame size
    3. Consume returned `TrackEvent` list (e.g. finalize counting for removed tracks)
    4. Read `confirmed_tracks()` to get tracks for downstream analysis or overlay

Key Classes:
    - `Track`: State of a single tracked object
    - `TrackState`: Track lifecycle state
    - `TrackEvent`: Lifecycle event produced by `ObjectTracker.update()`
    - `ObjectTracker`: Tracker which owns the active track set

Configuration Options:
    - `iou_threshold`: Minimum IoU for the first association stage
    - `max_lost_age`: Number of ticks a track may stay unmatched before it is removed
    - `min_hits`: Number of consecutive matches to confirm a track
    - `max_center_distance`: Normalized center distance gate for the second association stage
    - `matching`: "greedy" (default) or "optimal" assignment within each stage
"""

import numpy as np
from enum import Enum
from dataclasses import dataclass
from scipy.optimize import linear_sum_assignment
from typing import Dict, List, Optional, Sequence, Tuple
from . import logger_get
from .detections import Detection, ObjectClass
from .math_support import (
    box_center,
    box_iou_batch,
    frame_diagonal,
    point_distance,
    xywh2xyxy,
)

# relative weight of votes collected outside the counting zone
GLOBAL_VOTE_WEIGHT = 0.1


class TrackState(Enum):
    Tentative = 0
    Confirmed = 1


class TrackEventType(Enum):
    CONFIRMED = "confirmed"
    REMOVED = "removed"


@dataclass
class _IDCounter:
    """
    Track ID counter
    """

    _count: int = 0


class Track:
    """Represents a single tracked object.

    The track keeps the latest matched detection, the lifecycle counters used by the tracker,
    and the per-class evidence and zone counters used by the zone counting policy.

    Attributes:
        track_id (int): Unique ID for this track.
        bbox (Tuple[float, float, float, float]): Latest matched box ``(x, y, w, h)``.
        label (ObjectClass): Latest matched class.
        score (float): Latest matched confidence.
        obj_idx (int): Index of the latest matched detection in the current frame's result list,
            -1 when the track was not matched on the current frame.
        state (TrackState): Lifecycle state.
        hit_streak (int): Consecutive ticks the track has been matched.
        lost_age (int): Consecutive ticks the track has not been matched.
        previous_center (Tuple[float, float] or None): Box center before the latest update.
        in_zone_votes (Dict[ObjectClass, float]): Class evidence collected inside the zone.
        global_votes (Dict[ObjectClass, float]): Class evidence collected on every match.
        frames_in_zone (int): Ticks the track was judged inside or crossing the zone.
        frames_outside_zone (int): Consecutive ticks the track was judged outside the zone.
        boundary_crossed (bool): Set when a jump between frames crossed the zone boundary.
        counted (bool): Set once the track produced its count decision; never reset.
    """

    def __init__(self, track_id: int, detection: Detection):
        """
        Constructor.

        Args:
            track_id (int): Unique track ID.
            detection (Detection): Detection which started the track.
        """
        self.track_id = track_id
        self.bbox = detection.bbox
        self.label = detection.label
        self.score = detection.score
        self.obj_idx = detection.obj_idx
        self.state = TrackState.Tentative
        self.hit_streak = 0
        self.lost_age = 0
        self.previous_center: Optional[Tuple[float, float]] = None

        self.in_zone_votes: Dict[ObjectClass, float] = {}
        self.global_votes: Dict[ObjectClass, float] = {}
        self._class_order: List[ObjectClass] = []  # classes in first-observed order
        self.frames_in_zone = 0
        self.frames_outside_zone = 0
        self.boundary_crossed = False
        self.counted = False

        self._vote_global(detection.label, detection.score)

    @property
    def center(self) -> Tuple[float, float]:
        return box_center(self.bbox)

    @property
    def is_confirmed(self) -> bool:
        return self.state == TrackState.Confirmed

    def update(self, detection: Detection):
        """Updates this track with a new matched detection.

        Remembers the current center as `previous_center`, takes over the box, class and score
        of the detection, extends the hit streak, clears the lost age and records a global vote.

        Args:
            detection (Detection): The detection matched to this track.
        """
        self.previous_center = self.center
        self.bbox = detection.bbox
        self.label = detection.label
        self.score = detection.score
        self.obj_idx = detection.obj_idx
        self.hit_streak += 1
        self.lost_age = 0
        self._vote_global(detection.label, detection.score)

    def mark_missed(self):
        self.lost_age += 1
        self.hit_streak = 0
        self.obj_idx = -1

    def confirm(self) -> bool:
        """Promote tentative track to confirmed; returns True if the state changed."""
        if self.state == TrackState.Confirmed:
            return False
        self.state = TrackState.Confirmed
        return True

    def vote_zone(self, label: ObjectClass, score: float):
        """Record class evidence observed inside (or while crossing) the counting zone."""
        self._observe(label)
        self.in_zone_votes[label] = self.in_zone_votes.get(label, 0.0) + score
        self.frames_in_zone += 1

    def resolve_winning_class(self) -> ObjectClass:
        """Select the most probable class of this object.

        Every class seen in either tally is scored as
        ``in_zone_votes[c] + GLOBAL_VOTE_WEIGHT * global_votes[c]``. In-zone evidence dominates
        because classification is most reliable while the object is in the counting region.
        Ties go to the class observed first.

        Returns:
            Winning object class.
        """
        winner = self.label
        best = -1.0
        for c in self._class_order:
            in_zone = self.in_zone_votes.get(c, 0.0)
            total = in_zone + GLOBAL_VOTE_WEIGHT * self.global_votes.get(c, 0.0)
            if total > best:
                best = total
                winner = c
        return winner

    def _vote_global(self, label: ObjectClass, score: float):
        self._observe(label)
        self.global_votes[label] = self.global_votes.get(label, 0.0) + score

    def _observe(self, label: ObjectClass):
        if label not in self._class_order:
            self._class_order.append(label)

    def __repr__(self):
        return "OT_{}_{}({})".format(self.track_id, self.label.value, self.state.name)


@dataclass(frozen=True)
class TrackEvent:
    """Track lifecycle event returned by `ObjectTracker.update()`.

    Attributes:
        kind (TrackEventType): Event type.
        track (Track): Track the event refers to. For REMOVED events the track is no longer
            in the active set.
    """

    kind: TrackEventType
    track: Track


class MatchingMethod(Enum):
    GREEDY = "greedy"
    OPTIMAL = "optimal"


# (score, track index, detection index)
_Candidate = Tuple[float, int, int]


class ObjectTracker:
    """Tracker which associates per-frame detections with persistent tracks.

    Every call to `update()` is one processing tick:

    1. All (track, detection) pairs with IoU not lower than `iou_threshold` are matched,
       highest IoU first.
    2. Remaining tracks and detections are matched by center distance normalized by the frame
       diagonal, for pairs closer than `max_center_distance`, closest first.
    3. Matched tracks are updated; tentative tracks reaching `min_hits` become confirmed.
    4. Unmatched detections start new tracks.
    5. Unmatched tracks age; tracks older than `max_lost_age` are removed.

    With the default greedy matching, pairs are accepted in score order while both members are
    still free; equal scores keep enumeration order. The optimal matching replaces this
    acceptance step with minimum-cost assignment over the same candidate pairs.
    """

    def __init__(
        self,
        *,
        iou_threshold: float = 0.4,
        max_lost_age: int = 30,
        min_hits: int = 1,
        max_center_distance: float = 0.2,
        matching: MatchingMethod = MatchingMethod.GREEDY,
        id_counter: Optional[_IDCounter] = None,
    ):
        """Constructor.

        Args:
            iou_threshold (float, optional): Minimum IoU to match a detection to a track. Default 0.4.
            max_lost_age (int, optional): Number of consecutive unmatched ticks after which
                the track is removed (removal happens when the lost age exceeds this value). Default 30.
            min_hits (int, optional): Consecutive matches required to confirm a track. Default 1.
            max_center_distance (float, optional): Center distance gate, as a fraction of the frame
                diagonal, for the fallback association stage. Default 0.2.
            matching (MatchingMethod, optional): Assignment method within each stage. Default greedy.
            id_counter (_IDCounter, optional): Shared track ID counter; a new one is created if None.
        """
        if not 0.0 <= iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be from 0 to 1")
        if max_lost_age < 0:
            raise ValueError("max_lost_age must be a non-negative integer")
        if min_hits < 1:
            raise ValueError("min_hits must be a positive integer")
        if max_center_distance <= 0:
            raise ValueError("max_center_distance must be positive")

        self._iou_threshold = iou_threshold
        self._max_lost_age = max_lost_age
        self._min_hits = min_hits
        self._max_center_distance = max_center_distance
        self._matching = MatchingMethod(matching)
        self._id_counter = _IDCounter() if id_counter is None else id_counter
        self._tracks: List[Track] = []

    @property
    def tracks(self) -> List[Track]:
        """Active tracks in creation order."""
        return list(self._tracks)

    def confirmed_tracks(self, *, visible_only: bool = False) -> List[Track]:
        """Active confirmed tracks; with `visible_only`, only tracks matched on the last tick."""
        return [
            t
            for t in self._tracks
            if t.is_confirmed and (not visible_only or t.lost_age == 0)
        ]

    def reset(self):
        """Drop all active tracks. Track IDs keep increasing."""
        self._tracks = []

    def update(
        self, detections: Sequence[Detection], frame_wh: Tuple[int, int]
    ) -> List[TrackEvent]:
        """
        Run one tracking tick.

        Args:
            detections (Sequence[Detection]): Detections of the current frame.
            frame_wh (Tuple[int, int]): Current frame (width, height), used to normalize distances.

        Returns:
            Lifecycle events of this tick: CONFIRMED events for tracks promoted on this tick,
            followed by REMOVED events for tracks dropped from the active set.
        """
        logger = logger_get()
        events: List[TrackEvent] = []
        for track in self._tracks:
            track.obj_idx = -1  # clear object index in advance

        unmatched_tracks = list(range(len(self._tracks)))
        unmatched_dets = list(range(len(detections)))

        # first association: IoU
        candidates: List[_Candidate] = []
        if self._tracks and detections:
            ious = box_iou_batch(
                xywh2xyxy([t.bbox for t in self._tracks]),
                xywh2xyxy([d.bbox for d in detections]),
            )
            # row-major order keeps (track, detection) enumeration order for ties
            for ti, di in zip(*np.nonzero(ious >= self._iou_threshold)):
                candidates.append((float(ious[ti, di]), int(ti), int(di)))
        matches = self._assign(candidates)
        unmatched_tracks, unmatched_dets = self._remaining(
            matches, unmatched_tracks, unmatched_dets
        )

        # second association: normalized center distance
        norm = frame_diagonal(frame_wh)
        candidates = []
        for ti in unmatched_tracks:
            track_center = self._tracks[ti].center
            for di in unmatched_dets:
                dist = point_distance(track_center, detections[di].center) / norm
                if dist < self._max_center_distance:
                    candidates.append((1.0 - dist, ti, di))
        distance_matches = self._assign(candidates)
        unmatched_tracks, unmatched_dets = self._remaining(
            distance_matches, unmatched_tracks, unmatched_dets
        )
        matches.extend(distance_matches)

        for ti, di in matches:
            track = self._tracks[ti]
            track.update(detections[di])
            if track.hit_streak >= self._min_hits and track.confirm():
                logger.debug(
                    f"Track {track.track_id} confirmed as {track.label.value}"
                )
                events.append(TrackEvent(TrackEventType.CONFIRMED, track))

        for ti in unmatched_tracks:
            self._tracks[ti].mark_missed()

        for di in unmatched_dets:
            track = Track(self._next_id(), detections[di])
            self._tracks.append(track)
            logger.debug(f"Track {track.track_id} created for {track.label.value}")

        kept: List[Track] = []
        for track in self._tracks:
            if track.lost_age > self._max_lost_age:
                logger.debug(
                    f"Track {track.track_id} removed after {track.lost_age} lost ticks"
                )
                events.append(TrackEvent(TrackEventType.REMOVED, track))
            else:
                kept.append(track)
        self._tracks = kept

        return events

    def _next_id(self) -> int:
        self._id_counter._count += 1
        return self._id_counter._count

    def _assign(self, candidates: List[_Candidate]) -> List[Tuple[int, int]]:
        if not candidates:
            return []
        if self._matching == MatchingMethod.OPTIMAL:
            return ObjectTracker._optimal_assignment(candidates)
        return ObjectTracker._greedy_assignment(candidates)

    @staticmethod
    def _greedy_assignment(candidates: List[_Candidate]) -> List[Tuple[int, int]]:
        """
        Accept candidate pairs in descending score order while both members are free.

        Sorting is stable, so pairs with equal scores are taken in enumeration order.
        """
        used_tracks, used_dets = set(), set()
        matches = []
        for _, ti, di in sorted(candidates, key=lambda c: c[0], reverse=True):
            if ti not in used_tracks and di not in used_dets:
                used_tracks.add(ti)
                used_dets.add(di)
                matches.append((ti, di))
        return matches

    @staticmethod
    def _optimal_assignment(candidates: List[_Candidate]) -> List[Tuple[int, int]]:
        """
        Minimum-cost assignment over candidate pairs, cost being ``1 - score``.

        Pairs which are not candidates get a prohibitive cost and are never returned.
        """
        rows = sorted({ti for _, ti, _ in candidates})
        cols = sorted({di for _, _, di in candidates})
        row_pos = {ti: i for i, ti in enumerate(rows)}
        col_pos = {di: i for i, di in enumerate(cols)}

        gated_cost = 2.0
        cost_matrix = np.full((len(rows), len(cols)), gated_cost)
        for score, ti, di in candidates:
            cost_matrix[row_pos[ti], col_pos[di]] = 1.0 - score

        row_ind, col_ind = linear_sum_assignment(cost_matrix)
        return [
            (rows[r], cols[c])
            for r, c in zip(row_ind, col_ind)
            if cost_matrix[r, c] < gated_cost
        ]

    @staticmethod
    def _remaining(
        matches: List[Tuple[int, int]], tracks: List[int], dets: List[int]
    ) -> Tuple[List[int], List[int]]:
        matched_tracks = {ti for ti, _ in matches}
        matched_dets = {di for _, di in matches}
        return (
            [ti for ti in tracks if ti not in matched_tracks],
            [di for di in dets if di not in matched_dets],
        )
