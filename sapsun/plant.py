"""
Arena representation of the plant's segments.

The plant is a rooted tree of segments. Each segment lives in a slot of a
dense arena and is addressed by its integer slot index (its handle):

    - Numeric state (position, radius, health, pressure, concentration,
      sugar buffer, stress, active flag) lives in `SegmentFields`, one
      JAX array per field, so systems can update every segment at once.
    - Topology (type, parent, ordered children, slot generation) lives in
      plain Python lists indexed by handle.

Released slots are recycled through a free list. Every release bumps the
slot's generation, which lets holders of old handles (flow markers) tell
a recycled slot from the segment they were created for. The arena grows
by doubling when it runs out of slots.

This module only provides storage primitives. Structural edits with
resource accounting belong to `sapsun.store`; read-only queries belong to
`sapsun.graph`.
"""

import heapq
import operator
from dataclasses import dataclass
from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from jax import Array

from sapsun.config import SegmentType, Vec2

NO_PARENT = -1
FREE_SLOT = -1  # Type code of an unoccupied slot in `Topology.kind`

DEFAULT_CAPACITY = 64


def as_handle(segment_id: object) -> int | None:
    """
    Plain int for any integer-like handle, or None if it is not one.

    Accepts Python ints, numpy integer scalars and 0-d integer arrays,
    which is what handles read back out of field arrays look like.
    """
    try:
        return operator.index(segment_id)
    except TypeError:
        return None


class SegmentFields(NamedTuple):
    """
    Numeric state of every slot in the arena.

    All arrays have shape [capacity]. Values in unoccupied slots are
    zero and carry no meaning.
    """

    x: Array
    y: Array
    radius: Array  # Pipe capacity / thickness, > 0
    health: Array  # Structural health in [0, 1]
    pressure: Array  # Water (turgor) pressure in [0, 1]
    concentration: Array  # Sugar concentration in [0, 1]
    sugar_store: Array  # Local sugar buffer, >= 0
    stress: Array  # Stress level in [0, 1]
    active: Array  # bool; False once dead

    @classmethod
    def empty(cls, capacity: int) -> "SegmentFields":
        zeros = jnp.zeros(capacity, dtype=jnp.float32)
        return cls(
            x=zeros,
            y=zeros,
            radius=zeros,
            health=zeros,
            pressure=zeros,
            concentration=zeros,
            sugar_store=zeros,
            stress=zeros,
            active=jnp.zeros(capacity, dtype=bool),
        )

    def padded(self, capacity: int) -> "SegmentFields":
        """Copy of these fields grown to `capacity` slots."""
        extra = capacity - len(self.x)
        return SegmentFields(
            *(jnp.concatenate([a, jnp.zeros(extra, dtype=a.dtype)]) for a in self)
        )

    def to_host(self) -> "SegmentFields":
        """NumPy view of the fields for cheap scalar reads."""
        return SegmentFields(*(np.asarray(a) for a in self))


class Topology(NamedTuple):
    """Array form of the tree structure, rebuilt after structural edits."""

    kind: Array  # int32 SegmentType value, FREE_SLOT when unoccupied
    parent: Array  # int32 parent handle, NO_PARENT for the seed / free slots
    parent_index: Array  # parent clipped to 0, safe for gathers
    has_parent: Array  # bool
    child_count: Array  # int32
    occupied: Array  # bool


@dataclass(frozen=True)
class Segment:
    """Read-only view of one segment."""

    id: int
    kind: SegmentType
    position: Vec2
    parent_id: int | None
    children_ids: tuple[int, ...]
    radius: float
    health: float
    pressure: float
    concentration: float
    sugar_store: float
    active: bool
    stress: float


class SegmentTable:
    """Dense slot arena holding every segment of one plant."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.kinds: list[SegmentType | None] = [None] * capacity
        self.parents: list[int] = [NO_PARENT] * capacity
        self.children: list[list[int]] = [[] for _ in range(capacity)]
        self.generations: list[int] = [0] * capacity
        self.fields = SegmentFields.empty(capacity)
        self._free = list(range(capacity))
        heapq.heapify(self._free)
        self._count = 0
        self._topology: Topology | None = None

    @property
    def capacity(self) -> int:
        return len(self.kinds)

    def __len__(self) -> int:
        return self._count

    def __contains__(self, segment_id: object) -> bool:
        index = as_handle(segment_id)
        return index is not None and 0 <= index < self.capacity and self.kinds[index] is not None

    def ids(self) -> list[int]:
        """Handles of all occupied slots, ascending."""
        return [i for i, kind in enumerate(self.kinds) if kind is not None]

    def kind_of(self, segment_id: int) -> SegmentType:
        kind = self.kinds[segment_id]
        if kind is None:
            raise KeyError(segment_id)
        return kind

    def parent_of(self, segment_id: int) -> int | None:
        parent = self.parents[segment_id]
        return None if parent == NO_PARENT else parent

    def children_of(self, segment_id: int) -> tuple[int, ...]:
        return tuple(self.children[segment_id])

    def position_of(self, segment_id: int) -> Vec2:
        return Vec2(float(self.fields.x[segment_id]), float(self.fields.y[segment_id]))

    def segment(self, segment_id: int) -> Segment | None:
        """Read-only view of one segment, or None if the handle is free."""
        if segment_id not in self:
            return None
        return self._view(segment_id, self.fields.to_host())

    def segments(self) -> dict[int, Segment]:
        """Views of every occupied slot, keyed by handle."""
        host = self.fields.to_host()
        return {i: self._view(i, host) for i in self.ids()}

    def _view(self, segment_id: int, host: SegmentFields) -> Segment:
        return Segment(
            id=segment_id,
            kind=self.kind_of(segment_id),
            position=Vec2(float(host.x[segment_id]), float(host.y[segment_id])),
            parent_id=self.parent_of(segment_id),
            children_ids=self.children_of(segment_id),
            radius=float(host.radius[segment_id]),
            health=float(host.health[segment_id]),
            pressure=float(host.pressure[segment_id]),
            concentration=float(host.concentration[segment_id]),
            sugar_store=float(host.sugar_store[segment_id]),
            active=bool(host.active[segment_id]),
            stress=float(host.stress[segment_id]),
        )

    def topology(self) -> Topology:
        """Array form of the structure; cached until the next structural edit."""
        if self._topology is None:
            parent = jnp.asarray(self.parents, dtype=jnp.int32)
            kind = jnp.asarray(
                [FREE_SLOT if k is None else k.value for k in self.kinds],
                dtype=jnp.int32,
            )
            self._topology = Topology(
                kind=kind,
                parent=parent,
                parent_index=jnp.maximum(parent, 0),
                has_parent=parent >= 0,
                child_count=jnp.asarray([len(c) for c in self.children], dtype=jnp.int32),
                occupied=kind != FREE_SLOT,
            )
        return self._topology

    # ------------------------------------------------------------------
    # Storage primitives (used by the store only)
    # ------------------------------------------------------------------

    def allocate(
        self,
        kind: SegmentType,
        parent: int,
        position: Vec2,
        radius: float,
        pressure: float,
        concentration: float,
        sugar_store: float = 0.0,
    ) -> int:
        """Claim a slot, link it under `parent` and return its handle."""
        if not self._free:
            self._grow(self.capacity * 2)
        index = heapq.heappop(self._free)

        self.kinds[index] = kind
        self.parents[index] = parent
        self.children[index] = []
        if parent != NO_PARENT:
            self.children[parent].append(index)

        f = self.fields
        self.fields = SegmentFields(
            x=f.x.at[index].set(position.x),
            y=f.y.at[index].set(position.y),
            radius=f.radius.at[index].set(radius),
            health=f.health.at[index].set(1.0),
            pressure=f.pressure.at[index].set(pressure),
            concentration=f.concentration.at[index].set(concentration),
            sugar_store=f.sugar_store.at[index].set(sugar_store),
            stress=f.stress.at[index].set(0.0),
            active=f.active.at[index].set(True),
        )
        self._count += 1
        self._topology = None
        return index

    def detach(self, segment_id: int) -> None:
        """Remove `segment_id` from its parent's child list."""
        parent = self.parents[segment_id]
        if parent != NO_PARENT:
            self.children[parent].remove(segment_id)
            self.parents[segment_id] = NO_PARENT
            self._topology = None

    def reparent(self, segment_id: int, new_parent: int) -> None:
        self.detach(segment_id)
        self.parents[segment_id] = new_parent
        self.children[new_parent].append(segment_id)
        self._topology = None

    def release(self, segment_ids: list[int]) -> None:
        """Free the given (already detached) slots."""
        if not segment_ids:
            return
        for index in segment_ids:
            self.kinds[index] = None
            self.parents[index] = NO_PARENT
            self.children[index] = []
            self.generations[index] += 1
            heapq.heappush(self._free, index)
        self._count -= len(segment_ids)

        idx = jnp.asarray(segment_ids, dtype=jnp.int32)
        self.fields = SegmentFields(
            *(a.at[idx].set(jnp.zeros((), dtype=a.dtype)) for a in self.fields)
        )
        self._topology = None

    def translate(self, segment_ids: list[int], offset: Vec2) -> None:
        if not segment_ids:
            return
        idx = jnp.asarray(segment_ids, dtype=jnp.int32)
        self.fields = self.fields._replace(
            x=self.fields.x.at[idx].add(offset.x),
            y=self.fields.y.at[idx].add(offset.y),
        )

    def _grow(self, capacity: int) -> None:
        old = self.capacity
        extra = capacity - old
        self.kinds.extend([None] * extra)
        self.parents.extend([NO_PARENT] * extra)
        self.children.extend([] for _ in range(extra))
        self.generations.extend([0] * extra)
        for index in range(old, capacity):
            heapq.heappush(self._free, index)
        self.fields = self.fields.padded(capacity)
        self._topology = None

    # ------------------------------------------------------------------

    def occupied_mask(self) -> np.ndarray:
        return np.array([k is not None for k in self.kinds], dtype=bool)

    def is_valid(self) -> bool:
        """Check that every occupied slot holds in-range, finite values."""
        host = self.fields.to_host()
        mask = self.occupied_mask()
        unit_fields = (host.health, host.pressure, host.concentration, host.stress)
        in_range = all(np.all((a[mask] >= 0.0) & (a[mask] <= 1.0)) for a in unit_fields)
        finite = all(np.all(np.isfinite(a[mask])) for a in host[:-1])
        dead = mask & ~host.active
        dead_consistent = np.all(host.health[dead] == 0.0) and np.all(host.stress[dead] == 1.0)
        return bool(
            in_range
            and finite
            and np.all(host.radius[mask] > 0.0)
            and np.all(host.sugar_store[mask] >= 0.0)
            and dead_consistent
        )
