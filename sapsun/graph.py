"""
Read-only queries over the segment tree.

Every function here takes a `SegmentTable` and segment handles and returns
handles (or plain numbers). Nothing in this module mutates the table.
"""

from collections.abc import Iterator

import numpy as np

from sapsun.config import SegmentType
from sapsun.plant import NO_PARENT, SegmentTable


def get_parent(table: SegmentTable, segment_id: int) -> int | None:
    return table.parent_of(segment_id)


def get_children(table: SegmentTable, segment_id: int) -> list[int]:
    return list(table.children_of(segment_id))


def get_siblings(table: SegmentTable, segment_id: int) -> list[int]:
    """Segments sharing this segment's parent (excluding itself)."""
    parent = table.parent_of(segment_id)
    if parent is None:
        return []
    return [c for c in table.children_of(parent) if c != segment_id]


def is_tip(table: SegmentTable, segment_id: int) -> bool:
    """True if the segment has no children."""
    return not table.children[segment_id]


def is_root_node(table: SegmentTable, segment_id: int) -> bool:
    """True for the segment at the top of the hierarchy (the seed)."""
    return table.parent_of(segment_id) is None


def get_ancestors(table: SegmentTable, segment_id: int) -> list[int]:
    """Ancestors from the parent up to the seed."""
    ancestors = []
    current = table.parents[segment_id]
    while current != NO_PARENT:
        ancestors.append(current)
        current = table.parents[current]
    return ancestors


def get_descendants(table: SegmentTable, segment_id: int) -> list[int]:
    """All segments below this one, depth-first."""
    descendants = []
    stack = list(reversed(table.children[segment_id]))
    while stack:
        current = stack.pop()
        descendants.append(current)
        stack.extend(reversed(table.children[current]))
    return descendants


def get_path(table: SegmentTable, from_id: int, to_id: int) -> list[int] | None:
    """
    Path between two segments through their closest common ancestor.

    Returns None if either handle is unknown.
    """
    if from_id not in table or to_id not in table:
        return None

    from_chain = [from_id, *get_ancestors(table, from_id)]
    to_chain = [to_id, *get_ancestors(table, to_id)]
    from_set = set(from_chain)

    common = next((s for s in to_chain if s in from_set), None)
    if common is None:
        return None

    path_up = from_chain[: from_chain.index(common) + 1]
    path_down = to_chain[: to_chain.index(common)]
    return path_up + list(reversed(path_down))


def get_depth(table: SegmentTable, segment_id: int) -> int:
    """Number of edges between the segment and the seed."""
    return len(get_ancestors(table, segment_id))


def segments_by_type(table: SegmentTable, kind: SegmentType) -> list[int]:
    return [i for i in table.ids() if table.kinds[i] is kind]


def active_segments(table: SegmentTable) -> list[int]:
    active = np.asarray(table.fields.active)
    return [i for i in table.ids() if active[i]]


def tip_segments(table: SegmentTable) -> list[int]:
    return [i for i in table.ids() if not table.children[i]]


def traverse_pre_order(table: SegmentTable, start_id: int) -> Iterator[int]:
    """Yield the subtree at `start_id`, each segment before its children."""
    stack = [start_id]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(table.children[current]))


def traverse_post_order(table: SegmentTable, start_id: int) -> Iterator[int]:
    """Yield the subtree at `start_id`, each segment after its children."""
    stack: list[tuple[int, bool]] = [(start_id, False)]
    while stack:
        current, expanded = stack.pop()
        if expanded:
            yield current
            continue
        stack.append((current, True))
        stack.extend((c, False) for c in reversed(table.children[current]))


def subtree_size(table: SegmentTable, segment_id: int) -> int:
    """Number of segments in the subtree, including its root."""
    return 1 + len(get_descendants(table, segment_id))


def subtree_mass(table: SegmentTable, segment_id: int) -> float:
    """Sum of radii over the subtree rooted at `segment_id`."""
    radius = np.asarray(table.fields.radius)
    return float(sum(radius[i] for i in traverse_pre_order(table, segment_id)))


def invariant_violations(table: SegmentTable, seed_id: int = 0) -> list[str]:
    """
    Describe every structural invariant the table breaks.

    An empty list means the table is a single tree rooted at the seed,
    parent pointers agree with child lists, and the seed is alive.
    Intended for tests; production code never needs to call this.
    """
    problems: list[str] = []
    ids = table.ids()

    if seed_id not in table:
        return [f"seed {seed_id} is missing"]
    if table.kinds[seed_id] is not SegmentType.SEED:
        problems.append(f"seed slot {seed_id} holds {table.kinds[seed_id]}")
    if table.parents[seed_id] != NO_PARENT:
        problems.append("seed has a parent")
    if not bool(table.fields.active[seed_id]):
        problems.append("seed is inactive")

    for segment_id in ids:
        parent = table.parents[segment_id]
        if segment_id != seed_id:
            if parent == NO_PARENT:
                problems.append(f"segment {segment_id} has no parent")
            elif parent not in table:
                problems.append(f"segment {segment_id} points at free slot {parent}")
            elif table.children[parent].count(segment_id) != 1:
                problems.append(f"segment {segment_id} missing from parent {parent}'s children")
        for child in table.children[segment_id]:
            if child not in table:
                problems.append(f"segment {segment_id} lists free slot {child} as child")
            elif table.parents[child] != segment_id:
                problems.append(f"child {child} of {segment_id} points at {table.parents[child]}")

    reachable: set[int] = set()
    stack = [seed_id]
    while stack:
        current = stack.pop()
        if current in reachable:
            problems.append(f"segment {current} reached twice (cycle)")
            break
        reachable.add(current)
        stack.extend(table.children[current])
    if reachable != set(ids):
        problems.append("segments unreachable from the seed")

    return problems
