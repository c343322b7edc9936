"""
Hydraulics: water up the xylem, sugar down the phloem.

One call to `update` runs five sub-steps in a fixed order. Each sub-step
reads the store's current fields, computes new values for every segment
at once and commits them through the store's typed setters, so the next
sub-step sees the result:

1. Transpiration - leaves and tips lose pressure to the air
2. Root uptake - roots pull water from the soil
3. Xylem transfer - pressure flows parent -> child down the gradient
4. Phloem transfer - sugar concentration diffuses along each edge
5. Marker integration - advance and expire flow markers

Edge transfers are computed from the values at the start of the sub-step
(Jacobi style) and scattered back with `.at[].add`, so the result does not
depend on segment order.

Flow markers are purely visual. They live in a `MarkerPool` with a
global cap and a per-connection cap, so their number cannot grow with
the size of the plant.
"""

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

import jax.numpy as jnp
import jax.random as jr
import numpy as np
from jax import Array

from sapsun.climate import soil_water_at_depth
from sapsun.config import SegmentType, SimConfig
from sapsun.plant import SegmentTable
from sapsun.store import PlantStore


class MarkerKind(Enum):
    XYLEM = "xylem"  # Water, flowing up
    PHLOEM = "phloem"  # Sugar, flowing down


@dataclass
class FlowMarker:
    """A visual token travelling from one segment to a connected one."""

    marker_id: int
    source: int
    destination: int
    kind: MarkerKind
    speed: float
    progress: float = 0.0
    source_generation: int = 0
    destination_generation: int = 0


class MarkerPool:
    """Budgeted collection of live flow markers."""

    def __init__(self, config: SimConfig) -> None:
        self.config = config
        self._markers: list[FlowMarker] = []
        self._per_connection: Counter[tuple[int, int]] = Counter()
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._markers)

    def __iter__(self) -> Iterator[FlowMarker]:
        return iter(self._markers)

    def clear(self) -> None:
        self._markers.clear()
        self._per_connection.clear()

    def connection_count(self, source: int, destination: int) -> int:
        return self._per_connection[(source, destination)]

    def count_by_kind(self) -> dict[MarkerKind, int]:
        counts = {kind: 0 for kind in MarkerKind}
        for marker in self._markers:
            counts[marker.kind] += 1
        return counts

    def spawn(
        self,
        table: SegmentTable,
        source: int,
        destination: int,
        kind: MarkerKind,
        speed: float,
    ) -> bool:
        """Add a marker unless a budget is exhausted. Returns True if added."""
        config = self.config
        if len(self._markers) >= config.max_markers:
            return False
        connection = (source, destination)
        if self._per_connection[connection] >= config.max_markers_per_connection:
            return False
        if source not in table or destination not in table:
            return False

        self._per_connection[connection] += 1
        self._markers.append(
            FlowMarker(
                marker_id=self._next_id,
                source=source,
                destination=destination,
                kind=kind,
                speed=min(
                    config.marker_max_speed,
                    max(config.marker_min_speed, speed) * config.marker_speed,
                ),
                source_generation=table.generations[source],
                destination_generation=table.generations[destination],
            )
        )
        self._next_id += 1
        return True

    def _is_stale(self, table: SegmentTable, marker: FlowMarker) -> bool:
        return (
            marker.source not in table
            or marker.destination not in table
            or table.generations[marker.source] != marker.source_generation
            or table.generations[marker.destination] != marker.destination_generation
        )

    def advance(self, table: SegmentTable, dt: float) -> int:
        """Move markers along; drop finished or orphaned ones. Returns drops."""
        kept = []
        for marker in self._markers:
            if not self._is_stale(table, marker):
                marker.progress += marker.speed * dt
                if marker.progress < 1.0:
                    kept.append(marker)
                    continue
            connection = (marker.source, marker.destination)
            self._per_connection[connection] -= 1
            if self._per_connection[connection] <= 0:
                del self._per_connection[connection]
        dropped = len(self._markers) - len(kept)
        self._markers = kept
        return dropped


class FlowReport(NamedTuple):
    """What moved during one hydraulics update."""

    transpired: float  # Pressure lost by leaves and tips
    absorbed: float  # Pressure gained by roots
    xylem_moved: float  # Pressure moved along edges
    phloem_moved: float  # Concentration moved along edges


class FlowStats(NamedTuple):
    xylem_markers: int
    phloem_markers: int
    total_pressure: float
    total_sugar: float


def spawn_where(
    markers: MarkerPool,
    table: SegmentTable,
    mask: Array,
    sources: Array,
    destinations: Array,
    kind: MarkerKind,
    speeds: Array | float,
) -> None:
    """Spawn one marker for every slot selected by `mask`."""
    selected = np.flatnonzero(np.asarray(mask))
    if selected.size == 0:
        return
    src = np.asarray(sources)
    dst = np.asarray(destinations)
    spd = np.broadcast_to(np.asarray(speeds, dtype=np.float32), src.shape)
    for i in selected:
        markers.spawn(table, int(src[i]), int(dst[i]), kind, float(spd[i]))


def _living(table: SegmentTable) -> Array:
    return table.topology().occupied & table.fields.active


def _edges(table: SegmentTable) -> Array:
    """Mask of slots whose edge to their parent has both ends alive."""
    topo = table.topology()
    living = _living(table)
    return living & topo.has_parent & living[topo.parent_index]


def transpire(store: PlantStore, markers: MarkerPool, key: Array) -> float:
    config = store.config
    climate = store.climate
    table = store.table
    topo = table.topology()
    f = table.fields

    sun_factor = climate.sun_intensity * (1.0 + climate.temperature / 40.0)
    factor = config.transpiration_base + sun_factor * (1.0 - config.transpiration_base)

    is_tip = (topo.kind == SegmentType.LEAF.value) | (topo.child_count == 0)
    candidates = _living(table) & is_tip & (f.pressure > config.transpiration_min_pressure)
    loss = config.transpiration_rate * factor * f.radius
    actual = jnp.minimum(loss, f.pressure - config.transpiration_floor)
    transpiring = candidates & (actual > 0)
    actual = jnp.where(transpiring, actual, 0.0)

    store.set_pressures(
        jnp.where(
            transpiring,
            jnp.maximum(config.transpiration_floor, f.pressure - actual),
            f.pressure,
        )
    )

    rolls = jr.uniform(key, (table.capacity,))
    spawn = transpiring & topo.has_parent & (rolls < config.uptake_marker_chance)
    spawn_where(
        markers, table, spawn, topo.parent, jnp.arange(table.capacity),
        MarkerKind.XYLEM, 0.8 + factor * 0.5,
    )
    return float(jnp.sum(actual))


def absorb(store: PlantStore, markers: MarkerPool, key: Array) -> float:
    config = store.config
    table = store.table
    topo = table.topology()
    f = table.fields

    soil = soil_water_at_depth(store.climate.soil_water, f.y, config.climate)
    is_root = _living(table) & (topo.kind == SegmentType.ROOT.value)
    thirsty = is_root & (soil > config.root_min_soil_water) & (f.pressure < config.root_saturation)
    uptake = config.root_uptake_rate * f.radius * jnp.maximum(0.1, soil - f.pressure)
    absorbing = thirsty & (uptake > config.root_min_uptake)
    gained = jnp.where(absorbing, jnp.minimum(1.0, f.pressure + uptake) - f.pressure, 0.0)

    store.set_pressures(f.pressure + gained)
    total_uptake = float(jnp.sum(jnp.where(absorbing, uptake, 0.0)))
    if total_uptake > 0:
        store.modify_resources(water=total_uptake * config.water_pool_per_uptake)

    rolls = jr.uniform(key, (table.capacity,))
    spawn = absorbing & topo.has_parent & (rolls < config.uptake_marker_chance)
    spawn_where(
        markers, table, spawn, jnp.arange(table.capacity), topo.parent,
        MarkerKind.XYLEM, 0.8 + soil * 0.5,
    )
    return float(jnp.sum(gained))


def xylem_flow(store: PlantStore, markers: MarkerPool, key: Array) -> float:
    """Pressure moves from a parent to each child it out-pressures."""
    config = store.config
    table = store.table
    topo = table.topology()
    f = table.fields
    parent = topo.parent_index
    edges = _edges(table)

    parent_pressure = f.pressure[parent]
    diff = parent_pressure - f.pressure
    flowing = edges & (diff > config.flow_threshold)
    capacity = jnp.minimum(f.radius, f.radius[parent])
    flow = jnp.where(flowing, config.water_flow_rate * diff * capacity, 0.0)

    # A parent never gives away more than a fixed share of its pressure per tick.
    outflow = jnp.zeros_like(flow).at[parent].add(flow)
    budget = config.max_outflow_fraction * f.pressure
    scale = jnp.where(outflow > budget, budget / jnp.maximum(outflow, 1e-12), 1.0)
    flow = flow * scale[parent]

    pressure = f.pressure.at[parent].add(-flow) + flow * (1.0 - config.transfer_loss)
    store.set_pressures(pressure)

    transfer_key, ambient_key = jr.split(key)
    rolls = jr.uniform(transfer_key, (table.capacity,))
    transfer = flowing & (flow > 0.0005) & (rolls < config.transfer_marker_chance)
    spawn_where(
        markers, table, transfer, topo.parent, jnp.arange(table.capacity),
        MarkerKind.XYLEM, flow * 15.0,
    )

    # Ambient markers keep the stream visible even when little is moving.
    rolls = jr.uniform(ambient_key, (table.capacity,))
    wet = (parent_pressure > 0.1) | (f.pressure > 0.1)
    ambient = edges & wet & (rolls < config.ambient_marker_chance)
    spawn_where(
        markers, table, ambient, topo.parent, jnp.arange(table.capacity),
        MarkerKind.XYLEM, 0.8,
    )
    return float(jnp.sum(flow))


def phloem_flow(store: PlantStore, markers: MarkerPool, key: Array) -> float:
    """
    Sugar concentration diffuses along each edge, in either direction.

    Downhill (parent richer than child) flow also carries sugar from the
    parent's buffer into the child's, with 10% lost on the way.
    """
    config = store.config
    table = store.table
    topo = table.topology()
    f = table.fields
    parent = topo.parent_index
    edges = _edges(table)

    diff = f.concentration[parent] - f.concentration
    moving = edges & (jnp.abs(diff) > config.flow_threshold)
    capacity = jnp.minimum(f.radius, f.radius[parent])
    flow = jnp.where(moving, config.sugar_diffusion_rate * jnp.abs(diff) * capacity, 0.0)
    downward = moving & (diff > 0)

    # Source loses half the flow, destination gains 45%.
    child_delta = jnp.where(downward, 0.45 * flow, -0.5 * flow)
    parent_delta = jnp.where(downward, -0.5 * flow, 0.45 * flow)
    concentration = (f.concentration + child_delta).at[parent].add(parent_delta)
    store.set_concentrations(concentration)

    # Buffer transfer is limited by what the parent actually holds.
    wanted = jnp.where(downward, flow, 0.0)
    demand = jnp.zeros_like(wanted).at[parent].add(wanted)
    scale = jnp.where(demand > f.sugar_store, f.sugar_store / jnp.maximum(demand, 1e-12), 1.0)
    moved = wanted * scale[parent]
    sugar_store = (f.sugar_store + 0.9 * moved).at[parent].add(-moved)
    store.set_sugar_stores(sugar_store)

    transfer_key, ambient_key = jr.split(key)
    index = jnp.arange(table.capacity)
    rolls = jr.uniform(transfer_key, (table.capacity,))
    transfer = moving & (flow > 0.0005) & (rolls < config.transfer_marker_chance)
    sources = jnp.where(downward, topo.parent, index)
    destinations = jnp.where(downward, index, topo.parent)
    spawn_where(
        markers, table, transfer, sources, destinations, MarkerKind.PHLOEM, flow * 15.0
    )

    rolls = jr.uniform(ambient_key, (table.capacity,))
    ambient = edges & (rolls < config.ambient_marker_chance)
    spawn_where(markers, table, ambient, index, topo.parent, MarkerKind.PHLOEM, 0.7)
    return float(jnp.sum(flow))


def update(store: PlantStore, markers: MarkerPool, key: Array) -> FlowReport:
    """Run one tick of hydraulics on the store."""
    keys = jr.split(key, 4)
    transpired = transpire(store, markers, keys[0])
    absorbed = absorb(store, markers, keys[1])
    xylem_moved = xylem_flow(store, markers, keys[2])
    phloem_moved = phloem_flow(store, markers, keys[3])
    markers.advance(store.table, store.config.tick_seconds)
    return FlowReport(
        transpired=transpired,
        absorbed=absorbed,
        xylem_moved=xylem_moved,
        phloem_moved=phloem_moved,
    )


def flow_stats(store: PlantStore, markers: MarkerPool) -> FlowStats:
    """Marker counts by kind and plant-wide pressure / sugar totals."""
    counts = markers.count_by_kind()
    occupied = store.table.topology().occupied
    f = store.table.fields
    return FlowStats(
        xylem_markers=counts[MarkerKind.XYLEM],
        phloem_markers=counts[MarkerKind.PHLOEM],
        total_pressure=float(jnp.sum(jnp.where(occupied, f.pressure, 0.0))),
        total_sugar=float(jnp.sum(jnp.where(occupied, f.sugar_store, 0.0))),
    )
