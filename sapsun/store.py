"""
The resource store: single owner of a plant's mutable state.

A `PlantStore` holds the segment arena, the global resource pools, the
climate record, the UI selection and the pause / speed flags. It is an
ordinary object: construct one per simulation and pass it to the systems.

Mutations come in three families:

    Structural: add, remove (subtree prune), extend, plus the player
        actions grow / harden / thicken. Each either applies fully or
        returns None / False and leaves the store untouched.
    Typed scalar writes: one setter per concern (pressure, concentration,
        sugar buffer, radius, health + stress). The clamp for each field
        lives in its setter, so callers cannot break the ranges. The
        array-wide variants are what the systems use every tick.
    Bookkeeping: resources, climate, selection, pause, speed, tick.

Every mutation appends a `ChangeEvent` to `store.events`.
"""

import logging
from dataclasses import dataclass, replace

import jax.numpy as jnp
import numpy as np
from jax import Array

from sapsun import graph
from sapsun.config import (
    EXTENDABLE_TYPES,
    ClimateState,
    Resources,
    SegmentType,
    SimConfig,
    Vec2,
)
from sapsun.events import ChangeEvent, EventKind, EventQueue
from sapsun.plant import NO_PARENT, Segment, SegmentTable, as_handle

logger = logging.getLogger(__name__)

MIN_INHERITED_PRESSURE = 0.3
MIN_INHERITED_CONCENTRATION = 0.2


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable copy of everything a renderer needs for one frame."""

    segments: dict[int, Segment]
    seed_id: int
    resources: Resources
    climate: ClimateState
    selected_id: int | None
    paused: bool
    speed_multiplier: float


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


class PlantStore:
    """Owner of one plant's segments, resources and climate."""

    def __init__(self, config: SimConfig | None = None) -> None:
        self.config = config if config is not None else SimConfig()
        self.events = EventQueue(self.config.event_queue_limit)
        self.reset()

    def reset(self) -> None:
        """Return to a lone seed with the initial resources and climate."""
        config = self.config
        self.table = SegmentTable()
        self.seed_id = self.table.allocate(
            SegmentType.SEED,
            parent=NO_PARENT,
            position=Vec2(0.0, 0.0),
            radius=config.seed_radius,
            pressure=0.5,
            concentration=0.8,  # Seeds start with stored energy
            sugar_store=config.initial_sugar,
        )
        self.resources = Resources(
            sugar=config.initial_sugar,
            water=config.initial_water,
            minerals=config.initial_minerals,
        )
        self.climate = ClimateState.initial()
        self.selected_id: int | None = None
        self.paused = False
        self.speed_multiplier = 1.0
        self.events.clear()
        self._emit(EventKind.TICK, payload=self.climate.tick)

    def _emit(
        self, kind: EventKind, segment_ids: tuple[int, ...] = (), payload: object = None
    ) -> None:
        self.events.push(ChangeEvent(kind, self.climate.tick, segment_ids, payload))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def sugar(self) -> float:
        return self.resources.sugar

    def segment(self, segment_id: int) -> Segment | None:
        return self.table.segment(segment_id)

    def __contains__(self, segment_id: object) -> bool:
        return segment_id in self.table

    def __len__(self) -> int:
        return len(self.table)

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            segments=self.table.segments(),
            seed_id=self.seed_id,
            resources=self.resources,
            climate=self.climate,
            selected_id=self.selected_id,
            paused=self.paused,
            speed_multiplier=self.speed_multiplier,
        )

    # ------------------------------------------------------------------
    # Structural mutations
    # ------------------------------------------------------------------

    def add_segment(
        self,
        parent_id: int,
        kind: SegmentType,
        position: Vec2 | tuple[float, float],
        radius: float | None = None,
    ) -> int | None:
        """
        Grow a new segment under `parent_id`.

        Returns the new handle, or None (with no state change) if the
        parent does not exist, the type is SEED, or sugar is short.
        """
        parent_id = as_handle(parent_id)
        if parent_id not in self.table:
            logger.debug("add_segment: parent %s not found", parent_id)
            return None
        if kind is SegmentType.SEED:
            logger.debug("add_segment: a plant has exactly one seed")
            return None

        cost = self.config.segment_cost(kind)
        if self.resources.sugar < cost:
            logger.debug(
                "add_segment: not enough sugar (have %.2f, need %.2f)",
                self.resources.sugar,
                cost,
            )
            return None

        fields = self.table.fields
        parent_pressure = float(fields.pressure[parent_id])
        parent_concentration = float(fields.concentration[parent_id])
        if radius is None:
            radius = self.config.default_radius(kind)

        new_id = self.table.allocate(
            kind,
            parent=parent_id,
            position=Vec2(*position),
            radius=max(self.config.min_radius, radius),
            pressure=max(MIN_INHERITED_PRESSURE, parent_pressure * 0.95),
            concentration=max(MIN_INHERITED_CONCENTRATION, parent_concentration * 0.9),
        )
        self.resources = replace(self.resources, sugar=self.resources.sugar - cost)

        logger.debug("Added %s %d under %d", kind.name, new_id, parent_id)
        self._emit(EventKind.SEGMENT_ADDED, (new_id,), payload=kind)
        self._emit(EventKind.RESOURCES_CHANGED, payload=self.resources)
        return new_id

    def remove_segment(self, segment_id: int) -> bool:
        """Prune a segment together with its entire subtree. The seed stays."""
        segment_id = as_handle(segment_id)
        if segment_id not in self.table or segment_id == self.seed_id:
            return False

        removed = [segment_id, *graph.get_descendants(self.table, segment_id)]
        self.table.detach(segment_id)
        self.table.release(removed)

        logger.debug("Pruned %d segments at %d", len(removed), segment_id)
        self._emit(EventKind.SEGMENT_REMOVED, tuple(removed), payload=segment_id)
        if self.selected_id in removed:
            self.select_segment(None)
        return True

    def extend_segment(self, segment_id: int, direction: Vec2 | tuple[float, float]) -> int | None:
        """
        Lengthen a trunk, branch or root by one grid unit.

        A segment of the same type is inserted between `segment_id` and
        all of its children. The children (with their subtrees) move one
        grid unit along `direction`; the original keeps a single child.
        """
        segment_id = as_handle(segment_id)
        if segment_id not in self.table:
            logger.debug("extend_segment: segment %s not found", segment_id)
            return None

        kind = self.table.kind_of(segment_id)
        if kind not in EXTENDABLE_TYPES:
            logger.debug("extend_segment: cannot extend %s", kind.name)
            return None

        cost = self.config.segment_cost(kind)
        if self.resources.sugar < cost:
            logger.debug(
                "extend_segment: not enough sugar (have %.2f, need %.2f)",
                self.resources.sugar,
                cost,
            )
            return None

        direction = Vec2(*direction)
        grid = self.config.grid_size
        fields = self.table.fields
        inherited = list(self.table.children[segment_id])
        shifted = graph.get_descendants(self.table, segment_id)

        new_id = self.table.allocate(
            kind,
            parent=segment_id,
            position=self.table.position_of(segment_id).moved(direction, grid),
            radius=max(self.config.min_radius, float(fields.radius[segment_id]) * 0.95),
            pressure=float(fields.pressure[segment_id]) * 0.98,
            concentration=float(fields.concentration[segment_id]) * 0.98,
        )
        for child in inherited:
            self.table.reparent(child, new_id)
        self.table.translate(shifted, Vec2(direction.x * grid, direction.y * grid))
        self.resources = replace(self.resources, sugar=self.resources.sugar - cost)

        logger.debug("Extended %s %d with %d", kind.name, segment_id, new_id)
        self._emit(EventKind.SEGMENT_ADDED, (new_id,), payload=kind)
        if shifted:
            self._emit(EventKind.SEGMENT_UPDATED, tuple(shifted), payload="position")
        self._emit(EventKind.RESOURCES_CHANGED, payload=self.resources)
        return new_id

    def grow_segment(
        self, parent_id: int, kind: SegmentType, direction: Vec2 | tuple[float, float]
    ) -> int | None:
        """
        Player-style growth: place a new segment two grid units away.

        Only the sign of each direction component matters; the result is
        snapped to the grid. Refused when the parent already carries the
        maximum number of children.
        """
        parent_id = as_handle(parent_id)
        if parent_id not in self.table:
            return None
        if len(self.table.children[parent_id]) >= self.config.max_children:
            logger.debug("grow_segment: %d has no room for another child", parent_id)
            return None

        grid = self.config.grid_size
        spacing = grid * 2
        origin = self.table.position_of(parent_id)
        direction = Vec2(*direction)
        x = origin.x + _sign(direction.x) * spacing
        y = origin.y + _sign(direction.y) * spacing
        snapped = Vec2(round(x / grid) * grid, round(y / grid) * grid)
        return self.add_segment(parent_id, kind, snapped)

    def harden_segment(self, segment_id: int) -> bool:
        """Spend sugar to restore some structural health and thicken slightly."""
        segment_id = as_handle(segment_id)
        if (
            segment_id not in self.table
            or segment_id == self.seed_id
            or not bool(self.table.fields.active[segment_id])
            or self.resources.sugar < self.config.cost_harden
        ):
            return False

        fields = self.table.fields
        self.modify_resources(sugar=-self.config.cost_harden)
        self.set_health_and_stress(
            segment_id,
            health=min(1.0, float(fields.health[segment_id]) + 0.2),
            stress=float(fields.stress[segment_id]),
        )
        self.set_radius(segment_id, float(fields.radius[segment_id]) * 1.1)
        return True

    def thicken_segment(self, segment_id: int, factor: float | None = None) -> bool:
        """Spend sugar to widen a segment's pipe (reinforcement)."""
        segment_id = as_handle(segment_id)
        if (
            segment_id not in self.table
            or not bool(self.table.fields.active[segment_id])
            or self.resources.sugar < self.config.cost_harden
        ):
            return False

        if factor is None:
            factor = self.config.thicken_factor
        self.modify_resources(sugar=-self.config.cost_harden)
        self.set_radius(segment_id, float(self.table.fields.radius[segment_id]) * factor)
        return True

    # ------------------------------------------------------------------
    # Typed scalar writes (single segment)
    # ------------------------------------------------------------------

    def _set_one(self, segment_id: int, name: str, value: float) -> bool:
        segment_id = as_handle(segment_id)
        if segment_id not in self.table:
            return False
        column = getattr(self.table.fields, name)
        self.table.fields = self.table.fields._replace(**{name: column.at[segment_id].set(value)})
        self._emit(EventKind.SEGMENT_UPDATED, (segment_id,), payload=name)
        return True

    def set_pressure(self, segment_id: int, value: float) -> bool:
        return self._set_one(segment_id, "pressure", min(1.0, max(0.0, value)))

    def set_concentration(self, segment_id: int, value: float) -> bool:
        return self._set_one(segment_id, "concentration", min(1.0, max(0.0, value)))

    def set_sugar_store(self, segment_id: int, value: float) -> bool:
        return self._set_one(segment_id, "sugar_store", max(0.0, value))

    def set_radius(self, segment_id: int, value: float) -> bool:
        return self._set_one(segment_id, "radius", max(self.config.min_radius, value))

    def set_health_and_stress(self, segment_id: int, health: float, stress: float) -> bool:
        """
        Write health and stress together, applying the death rule.

        A non-seed segment whose stress reaches the death threshold is
        deactivated with health 0 and stress 1. Dead segments stay dead.
        """
        segment_id = as_handle(segment_id)
        if segment_id not in self.table:
            return False
        health_column = self.table.fields.health.at[segment_id].set(health)
        stress_column = self.table.fields.stress.at[segment_id].set(stress)
        self.set_health_and_stresses(health_column, stress_column)
        return True

    # ------------------------------------------------------------------
    # Typed scalar writes (whole arena, used by the systems)
    # ------------------------------------------------------------------

    def _write_column(self, name: str, values: Array, writable: Array) -> None:
        old = getattr(self.table.fields, name)
        new = jnp.where(writable, values, old).astype(old.dtype)
        self.table.fields = self.table.fields._replace(**{name: new})
        changed = np.flatnonzero(np.asarray(new != old))
        if changed.size:
            self._emit(EventKind.SEGMENT_UPDATED, tuple(int(i) for i in changed), payload=name)

    def set_pressures(self, values: Array) -> None:
        self._write_column(
            "pressure", jnp.clip(values, 0.0, 1.0), self.table.topology().occupied
        )

    def set_concentrations(self, values: Array) -> None:
        self._write_column(
            "concentration", jnp.clip(values, 0.0, 1.0), self.table.topology().occupied
        )

    def set_sugar_stores(self, values: Array) -> None:
        self._write_column(
            "sugar_store", jnp.maximum(values, 0.0), self.table.topology().occupied
        )

    def set_stresses(self, values: Array) -> list[int]:
        """
        Write stress for every segment, keeping health as it is.

        The death rule applies, so a segment pushed to the threshold here
        dies at once. Returns the handles of segments that died.
        """
        return self.set_health_and_stresses(self.table.fields.health, values)

    def set_health_and_stresses(self, health: Array, stress: Array) -> list[int]:
        """
        Write health and stress for every segment, applying the death rule.

        Returns the handles of segments that died in this call.
        """
        fields = self.table.fields
        occupied = self.table.topology().occupied
        living = occupied & fields.active
        stress = jnp.clip(stress, 0.0, 1.0)
        health = jnp.clip(health, 0.0, 1.0)

        is_seed = jnp.arange(self.table.capacity) == self.seed_id
        dies = living & ~is_seed & (stress >= self.config.stress_death_threshold)
        alive = living & ~dies

        new_health = jnp.where(alive, health, 0.0)
        new_stress = jnp.where(alive, stress, 1.0)
        self._write_column("health", new_health, occupied)
        self._write_column("stress", new_stress, occupied)

        died = [int(i) for i in np.flatnonzero(np.asarray(dies))]
        if died:
            self.table.fields = self.table.fields._replace(active=fields.active & ~dies)
            for segment_id in died:
                logger.info(
                    "%s %d died at tick %d",
                    self.table.kind_of(segment_id).name,
                    segment_id,
                    self.climate.tick,
                )
            self._emit(EventKind.SEGMENT_UPDATED, tuple(died), payload="active")
        return died

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def modify_resources(
        self, sugar: float = 0.0, water: float = 0.0, minerals: float = 0.0
    ) -> None:
        """Add deltas to the global pools, clamping each at zero."""
        self.resources = Resources(
            sugar=max(0.0, self.resources.sugar + sugar),
            water=max(0.0, self.resources.water + water),
            minerals=max(0.0, self.resources.minerals + minerals),
        )
        self._emit(EventKind.RESOURCES_CHANGED, payload=self.resources)

    def update_climate(self, **changes: object) -> None:
        self.climate = replace(self.climate, **changes)
        self._emit(EventKind.CLIMATE_UPDATED, payload=self.climate)

    def select_segment(self, segment_id: int | None) -> bool:
        if segment_id is not None:
            segment_id = as_handle(segment_id)
            if segment_id not in self.table:
                return False
        self.selected_id = segment_id
        self._emit(
            EventKind.SELECTION_CHANGED,
            () if segment_id is None else (segment_id,),
            payload=segment_id,
        )
        return True

    def set_paused(self, paused: bool) -> None:
        self.paused = paused

    def set_speed_multiplier(self, multiplier: float) -> None:
        self.speed_multiplier = max(0.1, min(10.0, multiplier))

    def increment_tick(self) -> None:
        self.climate = replace(self.climate, tick=self.climate.tick + 1)
        self._emit(EventKind.TICK, payload=self.climate.tick)
