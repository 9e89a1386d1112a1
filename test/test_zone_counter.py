#
# test_zone_counter.py: unit tests for zone transit counting
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests for zone transit counting policy and counts
#

import numpy as np
import pytest
from typing import List


def _det(center, label="car", score=0.9, size=40):
    from zone_transit_tools import Detection, ObjectClass

    half = size / 2
    return Detection(
        (center[0] - half, center[1] - half, size, size), ObjectClass(label), score
    )


def test_zone_transit_counting(square_zone):
    """
    Test zone transit counting scenarios: one object moving along a path
    """
    from zone_transit_tools import CounterConfig, TransitCounter, load_counter_config

    xs = [100, 200, 300, 400, 500, 600, 700, 800, 900, 950, 990]
    through_zone = [(x, 500) for x in xs]
    above_shrunk_zone = [(x, 300) for x in xs]
    one_count = [0] * 9 + [1, 0]
    no_counts = [0] * len(xs)

    test_cases: List[dict] = [
        {
            "case": "car dwells in zone and exits",
            "params": {},
            "inp": {"path": through_zone},
            "res": {"events": one_count, "label": "car", "counted": True},
        },
        {
            "case": "car in pedestrian mode is not counted",
            "params": {"counting_mode": "pedestrian"},
            "inp": {"path": through_zone},
            "res": {"events": no_counts, "counted": True},
        },
        {
            "case": "person in pedestrian mode",
            "params": {"counting_mode": "person"},
            "inp": {"path": through_zone, "label": "person"},
            "res": {"events": one_count, "label": "person", "counted": True},
        },
        {
            "case": "person in vehicle mode is not counted",
            "params": {"counting_mode": "vehicle"},
            "inp": {"path": through_zone, "label": "person"},
            "res": {"events": no_counts, "counted": True},
        },
        {
            "case": "path inside full zone",
            "params": {"hit_area_factor": 1.0},
            "inp": {"path": above_shrunk_zone},
            "res": {"events": one_count, "label": "car", "counted": True},
        },
        {
            "case": "path outside shrunk zone",
            "params": {"hit_area_factor": 0.5},
            "inp": {"path": above_shrunk_zone},
            "res": {"events": no_counts, "counted": False},
        },
        {
            "case": "jump over zone between two ticks",
            "params": {},
            "inp": {
                "path": [(10, 500), (12, 500), (90, 500), (92, 500), (94, 500)],
                "frame_wh": (100, 1000),
                "size": 8,
            },
            "res": {
                "events": [0, 0, 0, 0, 1],
                "label": "car",
                "crossed": True,
                "counted": True,
            },
        },
        {
            "case": "object parked in zone",
            "params": {},
            "inp": {"path": [(500, 500)] * 6},
            "res": {"events": [0] * 6, "frames_in_zone": 0, "counted": False},
        },
    ]

    for ci, case in enumerate(test_cases):
        print(f"\n[{ci + 1}/{len(test_cases)}] Testing: {case['case']}")

        config = load_counter_config(
            case["params"], previous=CounterConfig(zone=square_zone)
        )
        counter = TransitCounter(config)
        inp = case["inp"]
        res = case["res"]

        all_events = []
        for i, center in enumerate(inp["path"]):
            det = _det(center, inp.get("label", "car"), size=inp.get("size", 40))
            tick = counter.update([det], inp.get("frame_wh", (1000, 1000)))
            assert len(tick.count_events) == res["events"][i], (
                f"Case `{case['case']}` failed at step {i}: "
                + f"count events `{tick.count_events}` "
                + f"do not match expected `{res['events'][i]}`"
            )
            all_events.extend(tick.count_events)

        assert counter.tick_count == len(inp["path"])
        assert counter.counts.total == len(all_events)
        if all_events:
            assert all_events[0].label.value == res["label"]
            assert counter.counts.to_dict()[res["label"]] == 1

        (track,) = counter.tracker.tracks
        if "crossed" in res:
            assert track.boundary_crossed == res["crossed"]
        if "frames_in_zone" in res:
            assert track.frames_in_zone == res["frames_in_zone"]
        assert track.counted == res["counted"]
        print("  ✓ Passed")


def test_lost_track_finalization(square_zone):
    """
    Tracks removed after being lost are counted only if they dwelled in the zone
    """
    from zone_transit_tools import (
        TransitCounter,
        CounterConfig,
        TrackEventType,
        ObjectClass,
    )

    test_cases: List[dict] = [
        {
            "case": "one tick in zone",
            "inp": [(500, 500), (510, 500)],
            "res": {"frames_in_zone": 1, "events": 0},
        },
        {
            "case": "two ticks in zone",
            "inp": [(500, 500), (510, 500), (520, 500)],
            "res": {"frames_in_zone": 2, "events": 1},
        },
        {
            "case": "never in zone",
            "inp": [(100, 100), (110, 100), (120, 100)],
            "res": {"frames_in_zone": 0, "events": 0},
        },
    ]

    frame_wh = (1000, 1000)
    for ci, case in enumerate(test_cases):
        print(f"\n[{ci + 1}/{len(test_cases)}] Testing: {case['case']}")
        counter = TransitCounter(CounterConfig(zone=square_zone, max_lost_age=3))
        for center in case["inp"]:
            assert counter.update([_det(center)], frame_wh).count_events == []

        ticks = [counter.update([], frame_wh) for _ in range(4)]
        assert all(t.count_events == [] for t in ticks[:3])
        removed = [
            e.track for e in ticks[3].track_events if e.kind == TrackEventType.REMOVED
        ]
        assert len(removed) == 1
        assert removed[0].frames_in_zone == case["res"]["frames_in_zone"]
        assert len(ticks[3].count_events) == case["res"]["events"]
        if case["res"]["events"]:
            assert ticks[3].count_events[0].label == ObjectClass.CAR
            assert ticks[3].count_events[0].track_id == removed[0].track_id
        assert counter.tracker.tracks == []
        print("  ✓ Passed")


def test_policy_counts_once(square_zone):
    """
    A track produces at most one count event, even when it transits the zone again
    """
    from zone_transit_tools import Track, ZoneTransitPolicy, TrackState, ObjectClass

    frame_wh = (1000, 1000)
    policy = ZoneTransitPolicy(square_zone)
    track = Track(7, _det((100, 500)))
    track.state = TrackState.Confirmed

    events = []
    for x in [300, 400, 500, 600, 800, 900, 950]:
        track.update(_det((x, 500)))
        events.extend(policy.update([track], frame_wh))
    assert len(events) == 1
    assert events[0].track_id == 7 and events[0].label == ObjectClass.CAR
    assert track.counted

    # counted tracks are skipped: no more votes or zone frames are accumulated
    frames_in_zone = track.frames_in_zone
    in_zone_votes = dict(track.in_zone_votes)
    for x in [600, 500, 400, 100, 50, 20]:
        track.update(_det((x, 500), "bus"))
        events.extend(policy.update([track], frame_wh))

    assert len(events) == 1
    assert track.frames_in_zone == frames_in_zone
    assert track.in_zone_votes == in_zone_votes
    assert policy.finalize(track) == []


def test_policy_skips_unconfirmed_and_lost(square_zone):
    from zone_transit_tools import Track, ZoneTransitPolicy, TrackState

    frame_wh = (1000, 1000)
    policy = ZoneTransitPolicy(square_zone)

    tentative = Track(1, _det((400, 500)))
    tentative.update(_det((500, 500)))
    lost = Track(2, _det((400, 500)))
    lost.update(_det((500, 500)))
    lost.state = TrackState.Confirmed
    lost.mark_missed()

    assert policy.update([tentative, lost], frame_wh) == []
    assert tentative.frames_in_zone == 0 and lost.frames_in_zone == 0


def test_policy_resolves_class_from_zone_votes(square_zone):
    """
    Class observed in the zone wins over class observed outside
    """
    from zone_transit_tools import Track, ZoneTransitPolicy, TrackState, ObjectClass

    frame_wh = (1000, 1000)
    policy = ZoneTransitPolicy(square_zone)
    track = Track(1, _det((100, 500), "truck", 0.9))
    track.state = TrackState.Confirmed

    path = [
        (150, 500, "truck"),
        (200, 500, "truck"),
        (400, 500, "bus"),
        (500, 500, "bus"),
        (900, 500, "truck"),
        (950, 500, "truck"),
        (990, 500, "truck"),
    ]
    events = []
    for x, y, label in path:
        track.update(_det((x, y), label, 0.9))
        events.extend(policy.update([track], frame_wh))

    assert [e.label for e in events] == [ObjectClass.BUS]


def test_counting_polygon(square_zone):
    from zone_transit_tools import ZoneTransitPolicy, point_in_polygon

    policy = ZoneTransitPolicy(square_zone, hit_area_factor=0.5)
    polygon = policy.counting_polygon((1000, 2000))
    assert np.allclose(polygon, [(375, 750), (625, 750), (625, 1250), (375, 1250)])
    assert point_in_polygon((500, 1000), polygon)
    assert not point_in_polygon((300, 1000), polygon)

    policy.hit_area_factor = 1.0
    assert np.allclose(
        policy.counting_polygon((1000, 2000)),
        [(250, 500), (750, 500), (750, 1500), (250, 1500)],
    )

    with pytest.raises(ValueError, match="hit_area_factor must be from 0 to 1"):
        policy.hit_area_factor = 0
    with pytest.raises(ValueError, match="hit_area_factor must be from 0 to 1"):
        ZoneTransitPolicy(square_zone, hit_area_factor=1.1)
    with pytest.raises(ValueError, match="exit_frames must be a positive integer"):
        ZoneTransitPolicy(square_zone, exit_frames=0)


def test_transit_counts():
    from zone_transit_tools import (
        TransitCounts,
        CountEvent,
        CountingMode,
        ObjectClass,
    )

    counts = TransitCounts()
    assert counts.total == 0
    assert counts.to_dict() == {
        "car": 0,
        "bus": 0,
        "truck": 0,
        "motorcycle": 0,
        "bicycle": 0,
        "person": 0,
        "total": 0,
    }

    counts.add(CountEvent(ObjectClass.CAR, 1))
    counts.add(CountEvent(ObjectClass.CAR, 2))
    counts.add(CountEvent(ObjectClass.PERSON, 3))
    assert counts.total == 3
    assert counts.total_for_mode(CountingMode.VEHICLE) == 2
    assert counts.total_for_mode(CountingMode.PEDESTRIAN) == 1

    other = TransitCounts()
    other.add(CountEvent(ObjectClass.BUS, 4))
    counts += other
    assert counts.to_dict()["bus"] == 1
    assert counts.total == 4
    assert counts != other

    copy = TransitCounts()
    copy += counts
    assert copy == counts


def test_counting_mode():
    from zone_transit_tools import CountingMode, ObjectClass

    assert CountingMode.normalize("pedestrian") == CountingMode.PEDESTRIAN
    assert CountingMode.normalize("person") == CountingMode.PEDESTRIAN
    assert CountingMode.normalize("vehicle") == CountingMode.VEHICLE
    assert CountingMode.normalize("anything") == CountingMode.VEHICLE
    assert CountingMode.PEDESTRIAN.accepted_classes == {ObjectClass.PERSON}
    assert CountingMode.VEHICLE.accepts(ObjectClass.MOTORCYCLE)
    assert not CountingMode.VEHICLE.accepts(ObjectClass.PERSON)
    # every class is accepted by exactly one mode
    for c in ObjectClass:
        assert CountingMode.VEHICLE.accepts(c) != CountingMode.PEDESTRIAN.accepts(c)
