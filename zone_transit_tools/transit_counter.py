#
# transit_counter.py: zone transit counter
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements zone transit counter engine and result analyzer
#

"""
Transit Counter Module Overview
===============================

This module ties the tracker and the zone counting policy together into one counting engine
and exposes it as a PySDK result analyzer.

Every call to `TransitCounter.update()` is one processing tick:

1. Detections are associated with tracks by `ObjectTracker`.
2. Tracks removed on this tick are finalized: objects lost right after dwelling in the zone
   are counted.
3. Confirmed tracks matched on this tick go through `ZoneTransitPolicy`.
4. Produced count events are accumulated into per-class counts.

Ticks may be dropped by the caller at any rate; all durations are counted in processed ticks.
Detection requests issued before a `reconfigure()` or `reset()` call can be discarded by
passing the generation number captured at request time to `update()`.

Typical Usage:
    ```python
    counter = TransitCounter(load_counter_config("counting_mode: pedestrian"))
    for frame_detections in stream:
        tick = counter.update(frame_detections, (width, height))
        for event in tick.count_events:
            print(event.label.value, event.track_id)
    print(counter.counts.to_dict())
    ```

Key Classes:
    - `TransitCounter`: Counting engine which owns tracker, policy and counts
    - `TickResult`: Outcome of one tick
    - `TrackSnapshot`: Read-only view of a confirmed track
    - `ZoneTransitCounter`: Analyzer which runs the engine on PySDK inference results
"""

import copy
import yaml
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import List, Optional, Sequence, Tuple
from . import logger_get
from .counter_config import CounterConfig, load_counter_config, to_config_document
from .detections import Detection, ObjectClass, detections_from_results
from .math_support import xywh2xyxy
from .object_tracker import (
    ObjectTracker,
    Track,
    TrackEvent,
    TrackEventType,
    _IDCounter,
)
from .result_analyzer_base import ResultAnalyzerBase, analyze_stream
from .zone_count import CountEvent, TransitCounts, ZoneTransitPolicy


@dataclass(frozen=True)
class TrackSnapshot:
    """Read-only view of a confirmed track.

    Attributes:
        track_id (int): Track ID.
        bbox (Tuple[float, float, float, float]): Latest box ``(x, y, w, h)``.
        label (ObjectClass): Latest class.
        score (float): Latest confidence.
        lost_age (int): Consecutive ticks without a match.
    """

    track_id: int
    bbox: Tuple[float, float, float, float]
    label: ObjectClass
    score: float
    lost_age: int

    @classmethod
    def from_track(cls, track: Track) -> "TrackSnapshot":
        return cls(
            track.track_id, track.bbox, track.label, track.score, track.lost_age
        )


@dataclass
class TickResult:
    """Outcome of one `TransitCounter.update()` call.

    Attributes:
        count_events (List[CountEvent]): Count events produced on this tick.
        track_events (List[TrackEvent]): Tracker lifecycle events of this tick.
        tracks (List[TrackSnapshot]): Snapshot of all active confirmed tracks after this tick.
        stale (bool): True when the tick was discarded because of a generation mismatch.
    """

    count_events: List[CountEvent] = field(default_factory=list)
    track_events: List[TrackEvent] = field(default_factory=list)
    tracks: List[TrackSnapshot] = field(default_factory=list)
    stale: bool = False


class TransitCounter:
    """Zone transit counting engine.

    The counter owns all counting state: active tracks, the counting policy and the accumulated
    per-class counts. There are no process-wide globals; independent counters never interact.
    """

    def __init__(self, config: Optional[CounterConfig] = None):
        """
        Constructor.

        Args:
            config (CounterConfig, optional): Counter configuration. Defaults are used if None.
        """
        self._config = CounterConfig() if config is None else config
        self._id_counter = _IDCounter()
        self._tracker = self._make_tracker(self._config)
        self._policy = self._make_policy(self._config)
        self._counts = TransitCounts()
        self._generation = 0
        self.tick_count = 0

    @property
    def config(self) -> CounterConfig:
        return self._config

    @property
    def counts(self) -> TransitCounts:
        """Accumulated per-class counts."""
        return self._counts

    @property
    def generation(self) -> int:
        """Configuration generation; changes on every `reconfigure()` and `reset()` call."""
        return self._generation

    @property
    def tracker(self) -> ObjectTracker:
        return self._tracker

    @property
    def policy(self) -> ZoneTransitPolicy:
        return self._policy

    def update(
        self,
        detections: Sequence[Detection],
        frame_wh: Tuple[int, int],
        *,
        generation: Optional[int] = None,
    ) -> TickResult:
        """
        Run one counting tick.

        Args:
            detections (Sequence[Detection]): Detections of the current frame, already filtered
                by confidence threshold.
            frame_wh (Tuple[int, int]): Current frame (width, height).
            generation (int, optional): Generation captured when the detections were requested.
                If given and not equal to the current generation, the tick is discarded.

        Returns:
            Tick outcome.
        """
        if generation is not None and generation != self._generation:
            logger_get().debug(
                f"Discarding stale tick of generation {generation}, "
                f"current generation is {self._generation}"
            )
            return TickResult(stale=True)

        track_events = self._tracker.update(detections, frame_wh)

        count_events: List[CountEvent] = []
        for event in track_events:
            if event.kind == TrackEventType.REMOVED:
                count_events.extend(self._policy.finalize(event.track))

        count_events.extend(
            self._policy.update(
                self._tracker.confirmed_tracks(visible_only=True), frame_wh
            )
        )

        for event in count_events:
            self._counts.add(event)
        self.tick_count += 1

        return TickResult(
            count_events=count_events,
            track_events=track_events,
            tracks=[
                TrackSnapshot.from_track(t) for t in self._tracker.confirmed_tracks()
            ],
        )

    def reset(self) -> int:
        """
        Drop all tracks, clear counts and tick counter. Track IDs keep increasing.

        Returns:
            New generation number.
        """
        self._tracker.reset()
        self._counts = TransitCounts()
        self.tick_count = 0
        self._generation += 1
        return self._generation

    def reconfigure(
        self, config: Optional[CounterConfig] = None, **changes
    ) -> int:
        """
        Apply new configuration.

        Changing tracker parameters or counting mode rebuilds the tracker: active tracks are
        dropped without finalization. Zone and hit area changes apply from the next tick and
        keep active tracks. Counts are kept in both cases.

        Args:
            config (CounterConfig, optional): New configuration. Current configuration is used if None.
            **changes: Individual `CounterConfig` fields to change on top of `config`.

        Returns:
            New generation number.

        Raises:
            jsonschema.ValidationError: If changes do not conform to `counter_config_schema`.
        """
        base = self._config if config is None else config
        new_config = load_counter_config(to_config_document(changes), previous=base)

        # build new objects first: invalid values must leave current state untouched
        policy = self._make_policy(new_config)
        rebuild = (
            new_config.tracker_params() != self._config.tracker_params()
            or new_config.counting_mode != self._config.counting_mode
        )
        tracker = self._make_tracker(new_config) if rebuild else self._tracker

        self._config = new_config
        self._tracker = tracker
        self._policy = policy
        if rebuild:
            logger_get().info(
                f"Tracker rebuilt for {new_config.counting_mode.value} mode; "
                "active tracks dropped"
            )
        self._generation += 1
        logger_get().info(f"Counter reconfigured, generation {self._generation}")
        return self._generation

    def _make_tracker(self, config: CounterConfig) -> ObjectTracker:
        return ObjectTracker(id_counter=self._id_counter, **config.tracker_params())

    def _make_policy(self, config: CounterConfig) -> ZoneTransitPolicy:
        return ZoneTransitPolicy(
            config.zone,
            counting_mode=config.counting_mode,
            hit_area_factor=config.hit_area_factor,
        )


class ZoneTransitCounter(ResultAnalyzerBase):
    """Analyzer which counts objects transiting a zone in PySDK detection results.

    On every analyzed result, detections with recognized labels, sufficient confidence and
    a class accepted by the counting mode are passed to a `TransitCounter` tick.

    The input result is updated in-place:

    - each detection dictionary matched to a confirmed track receives a `"track_id"` key;
    - `result.count_events` holds the list of `CountEvent` objects produced by this result;
    - `result.transit_counts` holds a copy of the accumulated `TransitCounts`;
    - `result.tracks` holds the list of `TrackSnapshot` objects of active confirmed tracks.
    """

    def __init__(
        self,
        config: Optional[CounterConfig] = None,
        *,
        frame_wh: Optional[Tuple[int, int]] = None,
    ):
        """
        Constructor.

        Args:
            config (CounterConfig, optional): Counter configuration. Defaults are used if None.
            frame_wh (Tuple[int, int], optional): Frame (width, height). If None, the frame size
                is taken from `result.image` on every analyzed result.
        """
        self._counter = TransitCounter(config)
        self._frame_wh = frame_wh

    @property
    def counter(self) -> TransitCounter:
        return self._counter

    def analyze(self, result):
        """
        Run one counting tick on the inference result.

        Args:
            result (InferenceResults): Model inference result for the current frame.
        """
        config = self._counter.config
        detections = detections_from_results(
            result.results,
            score_threshold=config.score_threshold,
            counting_mode=config.counting_mode,
        )
        if self._frame_wh is not None:
            frame_wh = self._frame_wh
        else:
            frame_wh = (result.image.shape[1], result.image.shape[0])

        tick = self._counter.update(detections, frame_wh)

        for track in self._counter.tracker.confirmed_tracks(visible_only=True):
            if track.obj_idx >= 0:
                result.results[track.obj_idx]["track_id"] = track.track_id

        result.count_events = tick.count_events
        result.transit_counts = copy.deepcopy(self._counter.counts)
        result.tracks = tick.tracks

    def finalize(self):
        """Log accumulated counts at the end of the stream."""
        counts = self._counter.counts
        logger_get().info(
            f"Zone transit counts after {self._counter.tick_count} ticks: "
            f"{counts.to_dict()}"
        )


def _replay_run(args):
    """
    Replay recorded detections through the transit counter and print count events.

    Args:
        args: argparse command line arguments
    """
    with open(args.detections, encoding="utf-8") as f:
        recording = yaml.safe_load(f)

    config = CounterConfig()
    if args.config:
        config = load_counter_config(args.config)

    analyzer = ZoneTransitCounter(
        config, frame_wh=tuple(recording.get("frame_size", (0, 0)))
    )
    frames = (
        SimpleNamespace(
            results=[
                dict(obj, bbox=xywh2xyxy(obj["bbox"]).tolist())
                for obj in frame
                if "bbox" in obj
            ]
        )
        for frame in recording.get("frames") or []
    )

    for fi, result in enumerate(analyze_stream(frames, analyzer)):
        for event in result.count_events:
            print(f"frame {fi}: track {event.track_id} counted as {event.label.value}")

    for label, n in analyzer.counter.counts.to_dict().items():
        print(f"{label}: {n}")


def _replay_args(parser):
    """
    Define replay subcommand arguments

    Args:
        parser: argparse parser object to be stuffed with args
    """
    parser.add_argument(
        "detections",
        type=str,
        help="path to YAML/JSON file with recorded per-frame detections",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="",
        help="path to YAML/JSON counter configuration file",
    )
    parser.set_defaults(func=_replay_run)
