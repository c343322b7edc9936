"""
Configuration and value types for the plant simulation.

This module defines all tunable constants plus the small immutable records
shared by every system:

    SegmentType: the five kinds of plant segment
    Vec2: a 2D position or direction in meters
    Resources: the global sugar / water / mineral pools
    ClimateState: the environmental record advanced by the climate driver
    ClimateConfig: weather constants (with presets)
    SimConfig: everything else (costs, sizes, flow and metabolism rates)

Coordinates are meters with the seed at the origin and +y pointing down
into the soil, so canopy segments have negative y.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple


class SegmentType(Enum):
    """Kinds of plant segment."""

    SEED = 0
    ROOT = 1
    TRUNK = 2
    BRANCH = 3
    LEAF = 4


# Segment types that can be lengthened by inserting a segment of the same type.
EXTENDABLE_TYPES = (SegmentType.TRUNK, SegmentType.BRANCH, SegmentType.ROOT)


class Vec2(NamedTuple):
    """A 2D vector in world meters."""

    x: float
    y: float

    def moved(self, direction: "Vec2", distance: float) -> "Vec2":
        """Return this point moved `distance` times along `direction`."""
        return Vec2(self.x + direction.x * distance, self.y + direction.y * distance)

    def length(self) -> float:
        return math.hypot(self.x, self.y)


@dataclass(frozen=True)
class Resources:
    """Global resource pools. Every pool is clamped to be nonnegative."""

    sugar: float  # The only currency spent on structural growth
    water: float
    minerals: float


@dataclass(frozen=True)
class ClimateState:
    """
    Environmental conditions for the current tick.

    Written only by the climate driver (and explicit store calls);
    read by hydraulics and metabolism.
    """

    sun_intensity: float  # [0, 1], follows the day cycle
    sun_angle: float  # radians: 0 dawn, pi/2 noon, pi dusk
    temperature: float  # Celsius
    humidity: float  # [0, 1]
    soil_water: float  # [0, 1], surface soil moisture
    is_raining: bool
    day_progress: float  # [0, 1), 0.5 = noon
    day: int  # starts at 1
    tick: int  # total elapsed simulation steps

    @classmethod
    def initial(cls) -> "ClimateState":
        """Morning of day one, with moist soil and rain falling."""
        return cls(
            sun_intensity=0.5,
            sun_angle=math.pi / 4,
            temperature=20.0,
            humidity=0.5,
            soil_water=0.9,
            is_raining=True,
            day_progress=0.25,
            day=1,
            tick=0,
        )


@dataclass(frozen=True)
class ClimateConfig:
    """Weather constants for the day cycle and the rain process."""

    base_temperature: float = 20.0  # Celsius
    temperature_amplitude: float = 10.0
    min_sun_intensity: float = 0.05  # Night floor for sun intensity
    max_sun_intensity: float = 1.0
    rain_start_chance: float = 0.01  # Per tick, scaled by (1 + humidity)
    rain_stop_chance: float = 0.01  # Per tick while raining
    rain_water_rate: float = 0.05  # Soil water added per rainy tick
    evaporation_rate: float = 0.001  # Soil water lost per dry tick at full sun
    deep_soil_bonus: float = 0.3  # Extra water available at full depth
    deep_soil_depth: float = 2.0  # Meters at which the depth bonus saturates

    def __post_init__(self) -> None:
        for name in ("rain_start_chance", "rain_stop_chance"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be a probability, got {value}")
        if self.min_sun_intensity < 0 or self.min_sun_intensity > self.max_sun_intensity:
            raise ValueError("min_sun_intensity must lie in [0, max_sun_intensity]")
        if self.temperature_amplitude < 0:
            raise ValueError("Temperature amplitude must be nonnegative")
        if self.deep_soil_depth <= 0:
            raise ValueError("deep_soil_depth must be positive")

    @classmethod
    def temperate(cls) -> "ClimateConfig":
        """Default climate: mild days, occasional showers."""
        return cls()

    @classmethod
    def droughty(cls) -> "ClimateConfig":
        """Hot, dry climate where rain is rare and soil dries fast."""
        return cls(
            base_temperature=28.0,
            temperature_amplitude=12.0,
            rain_start_chance=0.002,
            rain_stop_chance=0.05,
            evaporation_rate=0.004,
        )

    @classmethod
    def monsoon(cls) -> "ClimateConfig":
        """Wet climate with long rain spells."""
        return cls(
            base_temperature=24.0,
            temperature_amplitude=6.0,
            rain_start_chance=0.03,
            rain_stop_chance=0.004,
            evaporation_rate=0.0005,
        )


@dataclass(frozen=True)
class SimConfig:
    """
    Complete simulation configuration.

    Defaults reproduce the balance of the reference game: a 20 Hz tick,
    60 second days, and a seed that can afford a few segments up front.
    """

    climate: ClimateConfig = field(default_factory=ClimateConfig)

    # Timing
    ticks_per_second: int = 20
    seconds_per_day: int = 60
    max_frame_seconds: float = 0.25  # Real-time clamp per frame (spiral of death guard)

    # Initial resources
    initial_sugar: float = 100.0
    initial_water: float = 30.0
    initial_minerals: float = 20.0

    # Segment costs (sugar)
    cost_leaf: float = 10.0
    cost_branch: float = 15.0
    cost_root: float = 12.0
    cost_trunk: float = 20.0
    cost_harden: float = 5.0

    # Segment sizes (meters)
    seed_radius: float = 0.03
    leaf_radius: float = 0.015
    branch_radius: float = 0.02
    root_radius: float = 0.018
    trunk_radius: float = 0.04
    min_radius: float = 1e-4

    # Grid
    grid_size: float = 0.25  # One tile, in meters
    max_children: int = 4

    # Hydraulics (xylem)
    transpiration_rate: float = 0.03
    transpiration_base: float = 0.2  # Night-time fraction of transpiration
    transpiration_min_pressure: float = 0.15  # Leaves below this stop transpiring
    transpiration_floor: float = 0.12  # Pressure never drops below this
    root_uptake_rate: float = 0.12
    root_min_soil_water: float = 0.1
    root_saturation: float = 0.95
    root_min_uptake: float = 0.001
    water_pool_per_uptake: float = 10.0
    water_flow_rate: float = 0.4
    flow_threshold: float = 0.003
    transfer_loss: float = 0.05
    max_outflow_fraction: float = 0.5  # Of the parent's pressure per tick

    # Hydraulics (phloem)
    sugar_diffusion_rate: float = 0.2

    # Flow markers (visual only)
    max_markers: int = 150
    max_markers_per_connection: int = 2
    marker_speed: float = 1.2
    marker_min_speed: float = 0.5
    marker_max_speed: float = 3.0
    transfer_marker_chance: float = 0.3
    ambient_marker_chance: float = 0.02
    uptake_marker_chance: float = 0.05

    # Metabolism
    photosynthesis_rate: float = 0.5
    night_photosynthesis: float = 0.15  # Stored-starch floor for the sun factor
    water_per_sugar: float = 0.3
    min_water_for_photosynthesis: float = 0.15
    photosynthesis_saturation: float = 0.5  # Pressure where water stops limiting
    respiration_cost: float = 0.002
    respiration_radius_factor: float = 5.0

    # Stress & health
    starvation_stress_rate: float = 0.012  # Per tick at a full shortfall
    dehydration_threshold: float = 0.08
    dehydration_stress_rate: float = 0.005
    recovery_rate: float = 0.02
    recovery_pressure: float = 0.15
    recovery_sugar: float = 0.02
    partial_recovery_pressure: float = 0.1
    health_stress_weight: float = 0.8
    health_smoothing: float = 0.1
    stress_death_threshold: float = 1.0

    # Growth heuristic
    growth_interval: int = 15
    min_growth_interval: int = 5
    growth_min_sugar: float = 20.0
    thicken_stress: float = 0.3
    thicken_factor: float = 1.2
    canopy_root_ratio: float = 3.0
    extend_chance: float = 0.3
    branch_chance: float = 0.4

    # Change records kept until drained
    event_queue_limit: int = 10000

    def __post_init__(self) -> None:
        if self.ticks_per_second <= 0 or self.seconds_per_day <= 0:
            raise ValueError("Tick rate and day length must be positive")
        if self.max_markers < 0 or self.max_markers_per_connection < 0:
            raise ValueError("Marker caps must be nonnegative")
        if self.grid_size <= 0:
            raise ValueError("grid_size must be positive")
        if self.min_radius <= 0:
            raise ValueError("min_radius must be positive")

    @property
    def tick_seconds(self) -> float:
        """Simulated seconds covered by one tick."""
        return 1.0 / self.ticks_per_second

    @property
    def ticks_per_day(self) -> int:
        return self.ticks_per_second * self.seconds_per_day

    def segment_cost(self, kind: SegmentType) -> float:
        """Sugar charged for building a segment of this type."""
        return {
            SegmentType.SEED: 0.0,
            SegmentType.ROOT: self.cost_root,
            SegmentType.TRUNK: self.cost_trunk,
            SegmentType.BRANCH: self.cost_branch,
            SegmentType.LEAF: self.cost_leaf,
        }[kind]

    def default_radius(self, kind: SegmentType) -> float:
        return {
            SegmentType.SEED: self.seed_radius,
            SegmentType.ROOT: self.root_radius,
            SegmentType.TRUNK: self.trunk_radius,
            SegmentType.BRANCH: self.branch_radius,
            SegmentType.LEAF: self.leaf_radius,
        }[kind]
