"""
Hand-coded growth heuristic.

When enabled, the heuristic periodically inspects the plant and makes at
most one structural edit through the store, following a fixed priority
list:

1. Thicken the most stressed trunk / branch / root
2. Grow roots when the canopy outweighs them
3. Grow leaves when there are fewer than two per root
4. Occasionally extend a trunk or branch upward
5. Grow the trunk upward from a trunk or seed tip
6. Occasionally grow a branch diagonally off a trunk tip

It fires faster when sugar is plentiful: the interval shrinks from 15
ticks by up to 80% once sugar exceeds 50, but never below 5 ticks.

All random choices draw from the JAX key passed to `update`, so a run is
reproducible from its seed. Edits that would place a segment on a grid
cell another segment already holds are skipped silently.
"""

import logging
from enum import Enum
from typing import NamedTuple

import jax.random as jr
from jax import Array

from sapsun import graph
from sapsun.config import SegmentType, SimConfig, Vec2
from sapsun.store import PlantStore

logger = logging.getLogger(__name__)

UP = Vec2(0.0, -1.0)
DOWN = Vec2(0.0, 1.0)
ROOT_DIRECTIONS = (DOWN, Vec2(-1.0, 1.0), Vec2(1.0, 1.0))
BRANCH_DIRECTIONS = (Vec2(-1.0, -1.0), Vec2(1.0, -1.0))

THICKENABLE_TYPES = (SegmentType.TRUNK, SegmentType.BRANCH, SegmentType.ROOT)


class ActionKind(Enum):
    GROW = "grow"
    THICKEN = "thicken"
    EXTEND = "extend"


class GrowAction(NamedTuple):
    kind: ActionKind
    target: int
    grow_type: SegmentType | None = None
    direction: Vec2 | None = None


class PlantAnalysis(NamedTuple):
    """Census of the living plant used to pick the next action."""

    leaf_count: int
    root_count: int
    trunk_count: int
    branch_count: int
    total_segments: int
    balance_ratio: float  # canopy / roots (lower is more balanced)
    average_stress: float
    weakest: int | None  # Living segment with the highest stress
    growth_tips: list[int]  # Living segments with room for another child
    extendable_trunks: list[int]  # Living trunks / branches with children
    extendable_roots: list[int]  # Living roots with children


def analyze_plant(store: PlantStore) -> PlantAnalysis:
    """Count living segments by type and find tips, extendables and the weakest."""
    table = store.table
    counts = {kind: 0 for kind in SegmentType}
    total_stress = 0.0
    highest_stress = 0.0
    weakest = None
    growth_tips: list[int] = []
    extendable_trunks: list[int] = []
    extendable_roots: list[int] = []

    for segment in table.segments().values():
        if not segment.active:
            continue
        counts[segment.kind] += 1
        total_stress += segment.stress
        if segment.stress > highest_stress:
            highest_stress = segment.stress
            weakest = segment.id

        if len(segment.children_ids) < store.config.max_children:
            growth_tips.append(segment.id)
        if segment.children_ids:
            if segment.kind in (SegmentType.TRUNK, SegmentType.BRANCH):
                extendable_trunks.append(segment.id)
            elif segment.kind is SegmentType.ROOT:
                extendable_roots.append(segment.id)

    total = len(table)
    canopy = counts[SegmentType.LEAF] + counts[SegmentType.TRUNK] + counts[SegmentType.BRANCH]
    roots = counts[SegmentType.ROOT]
    return PlantAnalysis(
        leaf_count=counts[SegmentType.LEAF],
        root_count=roots,
        trunk_count=counts[SegmentType.TRUNK],
        branch_count=counts[SegmentType.BRANCH],
        total_segments=total,
        balance_ratio=canopy / roots if roots > 0 else float(canopy),
        average_stress=total_stress / total if total > 0 else 0.0,
        weakest=weakest,
        growth_tips=growth_tips,
        extendable_trunks=extendable_trunks,
        extendable_roots=extendable_roots,
    )


def _choose(key: Array, items: list | tuple):
    return items[int(jr.randint(key, (), 0, len(items)))]


def decide_action(
    analysis: PlantAnalysis, store: PlantStore, key: Array
) -> GrowAction | None:
    """
    Pick the first applicable action from the priority list.

    Args:
        analysis: Census from `analyze_plant`
        store: Store to read resources and structure from (not modified)
        key: JAX random key for the random picks

    Returns:
        The action to attempt, or None when nothing applies
    """
    config = store.config
    table = store.table
    sugar = store.resources.sugar
    keys = jr.split(key, 8)

    # 1. Reinforce the weakest structural segment
    weakest = analysis.weakest
    if (
        weakest is not None
        and float(table.fields.stress[weakest]) > config.thicken_stress
        and sugar >= config.cost_harden
        and table.kind_of(weakest) in THICKENABLE_TYPES
    ):
        return GrowAction(ActionKind.THICKEN, weakest)

    # 2. Roots must keep up with the canopy
    if analysis.balance_ratio > config.canopy_root_ratio and sugar >= config.cost_root:
        roots = graph.segments_by_type(table, SegmentType.ROOT)
        if roots:
            target = _choose(keys[0], roots)
            if len(table.children[target]) < config.max_children:
                return GrowAction(
                    ActionKind.GROW, target, SegmentType.ROOT, _choose(keys[1], ROOT_DIRECTIONS)
                )
            return GrowAction(ActionKind.EXTEND, target, direction=DOWN)
        if len(table.children[store.seed_id]) < config.max_children:
            return GrowAction(ActionKind.GROW, store.seed_id, SegmentType.ROOT, DOWN)

    # 3. Enough leaves to feed the roots
    if analysis.leaf_count < analysis.root_count * 2 and sugar >= config.cost_leaf:
        candidates = [
            i for i in analysis.growth_tips
            if table.kinds[i] in (SegmentType.TRUNK, SegmentType.BRANCH)
        ]
        if candidates:
            return GrowAction(ActionKind.GROW, _choose(keys[2], candidates), SegmentType.LEAF, UP)

    # 4. Push the crown higher now and then
    if sugar >= config.cost_trunk and float(jr.uniform(keys[3])) < config.extend_chance:
        if analysis.extendable_trunks:
            return GrowAction(
                ActionKind.EXTEND, _choose(keys[4], analysis.extendable_trunks), direction=UP
            )

    # 5. Grow the trunk
    if sugar >= config.cost_trunk:
        candidates = [
            i for i in analysis.growth_tips
            if table.kinds[i] in (SegmentType.TRUNK, SegmentType.SEED)
        ]
        if candidates:
            return GrowAction(ActionKind.GROW, _choose(keys[5], candidates), SegmentType.TRUNK, UP)

    # 6. Branch out sideways
    if sugar >= config.cost_branch and float(jr.uniform(keys[6])) < config.branch_chance:
        candidates = [i for i in analysis.growth_tips if table.kinds[i] is SegmentType.TRUNK]
        if candidates:
            target = _choose(keys[7], candidates)
            direction = _choose(jr.fold_in(keys[7], 1), BRANCH_DIRECTIONS)
            return GrowAction(ActionKind.GROW, target, SegmentType.BRANCH, direction)

    return None


def grid_cell(position: Vec2, grid_size: float) -> tuple[int, int]:
    return (round(position.x / grid_size), round(position.y / grid_size))


def occupied_cells(store: PlantStore, exclude: set[int] | None = None) -> set[tuple[int, int]]:
    """Grid cells held by any segment (dead ones included) not in `exclude`."""
    exclude = exclude or set()
    host = store.table.fields.to_host()
    grid = store.config.grid_size
    return {
        grid_cell(Vec2(float(host.x[i]), float(host.y[i])), grid)
        for i in store.table.ids()
        if i not in exclude
    }


def _extension_collides(store: PlantStore, target: int, direction: Vec2) -> bool:
    """True if extending `target` would push its subtree onto another segment."""
    table = store.table
    grid = store.config.grid_size
    moving = graph.get_descendants(table, target)
    blocked = occupied_cells(store, exclude=set(moving))

    host = table.fields.to_host()
    landing = [table.position_of(target).moved(direction, grid)]
    landing.extend(
        Vec2(float(host.x[i]), float(host.y[i])).moved(direction, grid) for i in moving
    )
    return any(grid_cell(p, grid) in blocked for p in landing)


def execute_action(store: PlantStore, action: GrowAction) -> bool:
    """
    Apply an action through the store.

    Returns True if the store accepted the edit.
    """
    table = store.table
    if action.target not in table:
        return False
    target_kind = table.kind_of(action.target)

    if action.kind is ActionKind.THICKEN:
        if store.thicken_segment(action.target):
            logger.info("Thickened %s %d", target_kind.name, action.target)
            return True
        return False

    if action.kind is ActionKind.EXTEND:
        if _extension_collides(store, action.target, action.direction):
            logger.debug("Extension of %d blocked", action.target)
            return False
        new_id = store.extend_segment(action.target, action.direction)
        if new_id is not None:
            logger.info("Extended %s %d", target_kind.name, action.target)
        return new_id is not None

    position = table.position_of(action.target).moved(action.direction, store.config.grid_size)
    if grid_cell(position, store.config.grid_size) in occupied_cells(store):
        logger.debug("Cell at (%.2f, %.2f) already taken", position.x, position.y)
        return False
    new_id = store.add_segment(action.target, action.grow_type, position)
    if new_id is not None:
        logger.info("Grew %s %d from %d", action.grow_type.name, new_id, action.target)
    return new_id is not None


class GrowthHeuristic:
    """
    Toggleable driver that fires `decide_action` on a sugar-dependent interval.
    """

    def __init__(self, config: SimConfig, enabled: bool = False) -> None:
        self.config = config
        self.enabled = enabled
        self.ticks_since_growth = 0

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        self.ticks_since_growth = 0

    def growth_interval(self, sugar: float) -> float:
        """Ticks between decisions; shorter when sugar is abundant."""
        speed_bonus = min(0.8, max(0.0, sugar - 50.0) / 500.0)
        return max(
            float(self.config.min_growth_interval),
            self.config.growth_interval * (1.0 - speed_bonus),
        )

    def update(self, store: PlantStore, key: Array) -> GrowAction | None:
        """
        Advance the interval counter and act when it elapses.

        Returns:
            The action applied this tick, or None
        """
        if not self.enabled:
            return None

        self.ticks_since_growth += 1
        if self.ticks_since_growth < self.growth_interval(store.resources.sugar):
            return None
        self.ticks_since_growth = 0

        if store.resources.sugar < self.config.growth_min_sugar:
            return None

        action = decide_action(analyze_plant(store), store, key)
        if action is None or not execute_action(store, action):
            return None
        return action

