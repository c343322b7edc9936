"""
Sap & Sun Simulation Module

A plant growth simulator in which water rises through the xylem and
sugar sinks through the phloem of a tree of segments, driven by a day /
night climate and edited by a player or a growth heuristic.

Modules:
    config: Constants, value types and climate presets
    plant: Arena storage for segments (JAX field arrays, integer handles)
    graph: Read-only tree queries and the invariant checker
    events: Change records and the bounded event queue
    store: PlantStore, the single owner of mutable state
    climate: Day cycle, rain and soil water
    hydraulics: Transpiration, root uptake, xylem / phloem flow, flow markers
    metabolism: Photosynthesis, respiration, stress and death
    autogrow: Growth heuristic
    simulation: Fixed-timestep scheduler
    rollout: Headless runs and trajectories
    visualization: Matplotlib diagnostics
"""

from sapsun.autogrow import GrowAction, GrowthHeuristic, PlantAnalysis, analyze_plant
from sapsun.config import (
    ClimateConfig,
    ClimateState,
    Resources,
    SegmentType,
    SimConfig,
    Vec2,
)
from sapsun.events import ChangeEvent, EventKind, EventQueue
from sapsun.hydraulics import FlowMarker, FlowReport, MarkerKind, MarkerPool, flow_stats
from sapsun.metabolism import MetabolismReport, health_summary
from sapsun.plant import Segment, SegmentTable
from sapsun.rollout import Trajectory, run_days, run_ticks
from sapsun.simulation import Simulation
from sapsun.store import PlantStore, StoreSnapshot
from sapsun.visualization import plot_plant, plot_trajectory, save_figure

__all__ = [
    # Config
    "ClimateConfig",
    "ClimateState",
    "Resources",
    "SegmentType",
    "SimConfig",
    "Vec2",
    # Model
    "Segment",
    "SegmentTable",
    "PlantStore",
    "StoreSnapshot",
    "ChangeEvent",
    "EventKind",
    "EventQueue",
    # Systems
    "FlowMarker",
    "FlowReport",
    "MarkerKind",
    "MarkerPool",
    "flow_stats",
    "MetabolismReport",
    "health_summary",
    "GrowAction",
    "GrowthHeuristic",
    "PlantAnalysis",
    "analyze_plant",
    # Simulation
    "Simulation",
    "Trajectory",
    "run_days",
    "run_ticks",
    # Rendering
    "plot_plant",
    "plot_trajectory",
    "save_figure",
]
