"""
Fixed-timestep scheduler.

A `Simulation` bundles everything one running plant needs: the store, the
flow-marker pool, the growth heuristic and the JAX random key. Callers
feed it real elapsed time through `advance`, which runs as many 1/20 s
steps as the (speed-scaled) time covers, or call `step` directly.

Each step runs the systems in a fixed order:

    climate -> hydraulics -> metabolism -> growth -> tick increment

The run key is split once per step, and each system gets its own
subkey, so two simulations built with the same seed and fed the same
frame times produce identical plants.
"""

import logging

import jax.random as jr

from sapsun import climate, hydraulics, metabolism
from sapsun.autogrow import GrowAction, GrowthHeuristic
from sapsun.config import SimConfig
from sapsun.events import ChangeEvent
from sapsun.hydraulics import FlowReport, MarkerPool
from sapsun.metabolism import MetabolismReport
from sapsun.store import PlantStore

logger = logging.getLogger(__name__)

# Accumulator slack so that e.g. 0.25 s at 20 Hz runs exactly 5 steps.
TIME_EPSILON = 1e-9


class Simulation:
    """One plant plus the loop that drives it."""

    def __init__(
        self, config: SimConfig | None = None, seed: int = 0, auto_grow: bool = False
    ) -> None:
        self.config = config if config is not None else SimConfig()
        self.store = PlantStore(self.config)
        self.markers = MarkerPool(self.config)
        self.grower = GrowthHeuristic(self.config, enabled=auto_grow)
        self.reset(seed)

    def reset(self, seed: int | None = None) -> None:
        """Start over from a lone seed. Keeps the auto-grow setting."""
        if seed is not None:
            self.seed = seed
        self.key = jr.PRNGKey(self.seed)
        self.store.reset()
        self.markers.clear()
        self.grower.set_enabled(self.grower.enabled)
        self.accumulator = 0.0
        self.running = True
        self.last_flow: FlowReport | None = None
        self.last_metabolism: MetabolismReport | None = None
        self.last_action: GrowAction | None = None
        logger.debug("Simulation reset with seed %d", self.seed)

    @property
    def tick(self) -> int:
        return self.store.climate.tick

    def start(self) -> None:
        """Resume driving from `advance`, discarding any stored time."""
        self.running = True
        self.accumulator = 0.0

    def stop(self) -> None:
        self.running = False

    def set_auto_grow(self, enabled: bool) -> None:
        self.grower.set_enabled(enabled)

    def step(self) -> None:
        """Run exactly one simulation step."""
        self.key, climate_key, flow_key, metabolism_key, grow_key = jr.split(self.key, 5)
        store = self.store

        climate.update(store, climate_key)
        self.last_flow = hydraulics.update(store, self.markers, flow_key)
        self.last_metabolism = metabolism.update(store, self.markers, metabolism_key)
        self.last_action = self.grower.update(store, grow_key)
        store.increment_tick()

    def advance(self, real_seconds: float) -> int:
        """
        Feed `real_seconds` of wall-clock time into the fixed-step loop.

        The frame is capped at `max_frame_seconds` so a stalled caller
        does not trigger a burst of catch-up steps. Pause and speed are
        read once, at the top of the call.

        Args:
            real_seconds: Time since the previous call

        Returns:
            Number of steps run
        """
        store = self.store
        if not self.running or store.paused:
            return 0

        frame = min(max(0.0, real_seconds), self.config.max_frame_seconds)
        self.accumulator += frame * store.speed_multiplier

        tick_seconds = self.config.tick_seconds
        steps = 0
        while self.accumulator + TIME_EPSILON >= tick_seconds:
            self.step()
            self.accumulator -= tick_seconds
            steps += 1
        self.accumulator = max(0.0, self.accumulator)
        return steps

    def drain_events(self) -> list[ChangeEvent]:
        return self.store.events.drain()
