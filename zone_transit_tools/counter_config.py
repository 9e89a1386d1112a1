#
# counter_config.py: zone transit counter configuration
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements configuration data class and configuration document loading
#

"""
Counter Configuration Module Overview
=====================================

This module defines the tunable parameters of the zone transit counter and loads them from
YAML/JSON configuration documents.

Configuration documents are validated against `counter_config_schema`. All keys are optional:
missing keys keep their values from the previous configuration (or the defaults).

**Counter Configuration Schema (YAML)**:
```yaml
type: object
additionalProperties: false
properties:
    iou_threshold:
        type: number
        minimum: 0
        maximum: 1
    max_lost_age:
        type: integer
        minimum: 0
    min_hits:
        type: integer
        minimum: 1
    hit_area_factor:
        type: number
        exclusiveMinimum: 0
        maximum: 1
    counting_mode:
        type: string
        enum: [vehicle, pedestrian, person]
    zone:
        type: [array, string]
    max_center_distance:
        type: number
        exclusiveMinimum: 0
    matching:
        type: string
        enum: [greedy, optimal]
    score_threshold:
        type: number
        minimum: 0
        maximum: 1
```

Key Classes:
    - `CounterConfig`: Counter parameters with defaults

Key Functions:
    - `load_counter_config()`: Load and validate configuration document
    - `to_config_document()`: Convert configuration values to document form
"""

import os
import yaml, jsonschema
from enum import Enum
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Union
from .detections import CountingMode
from .object_tracker import MatchingMethod
from .zone_count import CountingZone, load_zone

#
# Schema for counter configuration
#

# keys
Key_IouThreshold = "iou_threshold"
Key_MaxLostAge = "max_lost_age"
Key_MinHits = "min_hits"
Key_HitAreaFactor = "hit_area_factor"
Key_CountingMode = "counting_mode"
Key_Zone = "zone"
Key_MaxCenterDistance = "max_center_distance"
Key_Matching = "matching"
Key_ScoreThreshold = "score_threshold"

# schema YAML
counter_config_schema_text = f"""
type: object
additionalProperties: false
properties:
    {Key_IouThreshold}:
        type: number
        minimum: 0
        maximum: 1
        description: Minimum IoU to match a detection to a track
    {Key_MaxLostAge}:
        type: integer
        minimum: 0
        description: Number of unmatched ticks after which a track is removed
    {Key_MinHits}:
        type: integer
        minimum: 1
        description: Consecutive matches required to confirm a track
    {Key_HitAreaFactor}:
        type: number
        exclusiveMinimum: 0
        maximum: 1
        description: Factor to shrink the counting zone toward its centroid
    {Key_CountingMode}:
        type: string
        enum: [{CountingMode.VEHICLE.value}, {CountingMode.PEDESTRIAN.value}, person]
        description: Object classes to count
    {Key_Zone}:
        type: [array, string]
        description: Four zone vertices in normalized coordinates
    {Key_MaxCenterDistance}:
        type: number
        exclusiveMinimum: 0
        description: Center distance gate as a fraction of frame diagonal
    {Key_Matching}:
        type: string
        enum: [{MatchingMethod.GREEDY.value}, {MatchingMethod.OPTIMAL.value}]
        description: Detection to track assignment method
    {Key_ScoreThreshold}:
        type: number
        minimum: 0
        maximum: 1
        description: Minimum detection confidence
"""

counter_config_schema = yaml.safe_load(counter_config_schema_text)


@dataclass(frozen=True)
class CounterConfig:
    """Zone transit counter parameters.

    Attributes:
        iou_threshold (float): Minimum IoU to match a detection to a track.
        max_lost_age (int): Unmatched ticks after which a track is removed.
        min_hits (int): Consecutive matches required to confirm a track.
        hit_area_factor (float): Counting zone shrink factor in (0, 1].
        counting_mode (CountingMode): Object classes to count.
        zone (CountingZone): Counting zone.
        max_center_distance (float): Center distance gate as a fraction of frame diagonal.
        matching (MatchingMethod): Detection to track assignment method.
        score_threshold (float): Minimum detection confidence used by detection prefiltering.
    """

    iou_threshold: float = 0.4
    max_lost_age: int = 30
    min_hits: int = 1
    hit_area_factor: float = 1.0
    counting_mode: CountingMode = CountingMode.VEHICLE
    zone: CountingZone = field(default_factory=CountingZone.default)
    max_center_distance: float = 0.2
    matching: MatchingMethod = MatchingMethod.GREEDY
    score_threshold: float = 0.5

    def tracker_params(self) -> dict:
        """Keyword arguments for `ObjectTracker` constructor."""
        return dict(
            iou_threshold=self.iou_threshold,
            max_lost_age=self.max_lost_age,
            min_hits=self.min_hits,
            max_center_distance=self.max_center_distance,
            matching=self.matching,
        )

    def to_dict(self) -> dict:
        """Configuration in document form, suitable for `load_counter_config()`."""
        return to_config_document(
            {f.name: getattr(self, f.name) for f in fields(self)}
        )


def to_config_document(values: dict) -> dict:
    """Convert configuration values to document form.

    Enumerations are replaced by their names and zones by vertex lists, so the result can be
    validated against `counter_config_schema` and passed to `load_counter_config()`.

    Args:
        values (dict): `CounterConfig` field values, possibly only some of them.

    Returns:
        Configuration document.
    """
    ret = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, CountingZone):
            value = value.to_list()
        ret[key] = value
    return ret


def load_counter_config(
    description: Union[str, dict, None],
    previous: Optional[CounterConfig] = None,
) -> CounterConfig:
    """Load counter configuration from a document.

    Args:
        description (str or dict): Configuration dictionary, YAML/JSON text, or a path
            to a YAML/JSON file. None means an empty document.
        previous (CounterConfig, optional): Configuration providing values for missing keys
            and the fallback zone. Defaults are used if None.

    Returns:
        Loaded configuration.

    Raises:
        jsonschema.ValidationError: If the document does not conform to `counter_config_schema`.
    """
    if isinstance(description, str):
        if os.path.isfile(description):
            with open(description, encoding="utf-8") as f:
                description = f.read()
        description = yaml.safe_load(description)
    if description is None:
        description = {}

    jsonschema.validate(instance=description, schema=counter_config_schema)

    base = CounterConfig() if previous is None else previous
    changes = dict(description)
    if Key_CountingMode in changes:
        changes[Key_CountingMode] = CountingMode.normalize(changes[Key_CountingMode])
    if Key_Matching in changes:
        changes[Key_Matching] = MatchingMethod(changes[Key_Matching])
    if Key_Zone in changes:
        changes[Key_Zone] = load_zone(changes[Key_Zone], fallback=base.zone)
    return replace(base, **changes)
