"""
Headless runs with a per-tick record.

This module drives a `Simulation` for a fixed number of ticks (or days)
and records a handful of plant-wide scalars after every tick:

- Climate: sun, soil water, rain
- Resources: global sugar and water pools
- Structure: segment counts (total, living)
- Condition: mean stress, total pressure, live flow markers
- Metabolism: sugar produced and respired that tick

The result is a `Trajectory` that can be summarized or plotted.
"""

from dataclasses import dataclass, field

import jax.numpy as jnp
from jax import Array

from sapsun import graph
from sapsun.hydraulics import flow_stats
from sapsun.simulation import Simulation


@dataclass
class Trajectory:
    """
    Record of a headless run, one entry per tick.
    """

    ticks: list[int] = field(default_factory=list)
    days: list[int] = field(default_factory=list)
    sun_history: list[float] = field(default_factory=list)
    soil_water_history: list[float] = field(default_factory=list)
    rain_history: list[bool] = field(default_factory=list)
    sugar_history: list[float] = field(default_factory=list)
    water_history: list[float] = field(default_factory=list)
    segment_history: list[int] = field(default_factory=list)
    living_history: list[int] = field(default_factory=list)
    stress_history: list[float] = field(default_factory=list)
    pressure_history: list[float] = field(default_factory=list)
    marker_history: list[int] = field(default_factory=list)
    produced_history: list[float] = field(default_factory=list)
    respired_history: list[float] = field(default_factory=list)
    deaths: list[tuple[int, int]] = field(default_factory=list)  # (tick, segment id)

    def __len__(self) -> int:
        return len(self.ticks)

    def record(self, sim: Simulation) -> None:
        """Append the state of `sim` after its latest step."""
        store = sim.store
        table = store.table
        living = graph.active_segments(table)
        stress = table.fields.to_host().stress
        stats = flow_stats(store, sim.markers)
        report = sim.last_metabolism

        self.ticks.append(store.climate.tick)
        self.days.append(store.climate.day)
        self.sun_history.append(store.climate.sun_intensity)
        self.soil_water_history.append(store.climate.soil_water)
        self.rain_history.append(store.climate.is_raining)
        self.sugar_history.append(store.resources.sugar)
        self.water_history.append(store.resources.water)
        self.segment_history.append(len(table))
        self.living_history.append(len(living))
        self.stress_history.append(float(stress[living].mean()) if living else 0.0)
        self.pressure_history.append(stats.total_pressure)
        self.marker_history.append(len(sim.markers))
        self.produced_history.append(report.produced if report else 0.0)
        self.respired_history.append(report.respired if report else 0.0)
        if report:
            self.deaths.extend((store.climate.tick, i) for i in report.died)

    def get_arrays(self) -> dict[str, Array]:
        """Convert the histories to arrays for plotting."""
        return {
            "sun": jnp.array(self.sun_history),
            "soil_water": jnp.array(self.soil_water_history),
            "rain": jnp.array(self.rain_history, dtype=bool),
            "sugar": jnp.array(self.sugar_history),
            "water": jnp.array(self.water_history),
            "segments": jnp.array(self.segment_history),
            "living": jnp.array(self.living_history),
            "stress": jnp.array(self.stress_history),
            "pressure": jnp.array(self.pressure_history),
            "markers": jnp.array(self.marker_history),
            "produced": jnp.array(self.produced_history),
            "respired": jnp.array(self.respired_history),
        }

    def get_scalar_summary(self) -> dict[str, float]:
        """
        Compute a scalar summary of the run.

        Returns a dictionary with:
        - Ticks / Days: length of the run
        - FinalSegments / FinalLiving / Deaths: structural outcome
        - FinalSugar / PeakSugar / MinSugar: economy
        - TotalProduced / TotalRespired: metabolism over the run
        - MeanStress / MeanSun / RainFraction: conditions
        - PeakMarkers: largest live marker count seen
        """
        if not self.ticks:
            raise ValueError("Trajectory is empty")
        arrays = self.get_arrays()
        return {
            "Ticks": len(self.ticks),
            "Days": self.days[-1],
            "FinalSegments": self.segment_history[-1],
            "FinalLiving": self.living_history[-1],
            "Deaths": len(self.deaths),
            "FinalSugar": self.sugar_history[-1],
            "PeakSugar": float(jnp.max(arrays["sugar"])),
            "MinSugar": float(jnp.min(arrays["sugar"])),
            "TotalProduced": float(jnp.sum(arrays["produced"])),
            "TotalRespired": float(jnp.sum(arrays["respired"])),
            "MeanStress": float(jnp.mean(arrays["stress"])),
            "MeanSun": float(jnp.mean(arrays["sun"])),
            "RainFraction": float(jnp.mean(arrays["rain"])),
            "PeakMarkers": int(jnp.max(arrays["markers"])),
        }

    def print_summary(self) -> None:
        """Print a formatted summary table to stdout."""
        summary = self.get_scalar_summary()
        print("\n" + "=" * 40)
        print("RUN SUMMARY")
        print("=" * 40)
        for key, value in summary.items():
            if isinstance(value, int):
                print(f"{key:20s}: {value:>10d}")
            else:
                print(f"{key:20s}: {value:>10.3f}")
        print("=" * 40)


def run_ticks(sim: Simulation, num_ticks: int) -> Trajectory:
    """
    Step `sim` exactly `num_ticks` times, recording after each step.

    Pause, speed and the frame cap only affect `advance`, so they are
    ignored here.
    """
    trajectory = Trajectory()
    for _ in range(num_ticks):
        sim.step()
        trajectory.record(sim)
    return trajectory


def run_days(sim: Simulation, num_days: int) -> Trajectory:
    """Step `sim` through `num_days` full days."""
    return run_ticks(sim, num_days * sim.config.ticks_per_day)
