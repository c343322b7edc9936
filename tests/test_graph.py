"""
Tests for read-only tree queries.
"""

from sapsun import graph
from sapsun.config import SegmentType
from sapsun.plant import NO_PARENT
from sapsun.store import PlantStore


def make_plant() -> tuple[PlantStore, dict[str, int]]:
    """
    Seed with a trunk carrying a leaf and a branch, plus one root.

        seed -> trunk -> leaf
                      -> branch
             -> root
    """
    store = PlantStore()
    seed = store.seed_id
    trunk = store.add_segment(seed, SegmentType.TRUNK, (0.0, -0.25))
    leaf = store.add_segment(trunk, SegmentType.LEAF, (0.0, -0.5))
    branch = store.add_segment(trunk, SegmentType.BRANCH, (0.25, -0.5))
    root = store.add_segment(seed, SegmentType.ROOT, (0.0, 0.25))
    return store, {"seed": seed, "trunk": trunk, "leaf": leaf, "branch": branch, "root": root}


class TestRelations:
    """Tests for parent / child / sibling queries."""

    def test_parent_and_children(self) -> None:
        store, ids = make_plant()
        table = store.table
        assert graph.get_parent(table, ids["leaf"]) == ids["trunk"]
        assert graph.get_parent(table, ids["seed"]) is None
        assert graph.get_children(table, ids["trunk"]) == [ids["leaf"], ids["branch"]]

    def test_siblings(self) -> None:
        store, ids = make_plant()
        assert graph.get_siblings(store.table, ids["leaf"]) == [ids["branch"]]
        assert graph.get_siblings(store.table, ids["seed"]) == []

    def test_tips_and_root_node(self) -> None:
        store, ids = make_plant()
        table = store.table
        assert graph.is_tip(table, ids["leaf"])
        assert not graph.is_tip(table, ids["trunk"])
        assert graph.is_root_node(table, ids["seed"])
        assert sorted(graph.tip_segments(table)) == sorted([ids["leaf"], ids["branch"], ids["root"]])


class TestWalks:
    """Tests for ancestor / descendant walks and paths."""

    def test_ancestors(self) -> None:
        store, ids = make_plant()
        assert graph.get_ancestors(store.table, ids["leaf"]) == [ids["trunk"], ids["seed"]]
        assert graph.get_ancestors(store.table, ids["seed"]) == []

    def test_descendants_depth_first(self) -> None:
        store, ids = make_plant()
        assert graph.get_descendants(store.table, ids["seed"]) == [
            ids["trunk"],
            ids["leaf"],
            ids["branch"],
            ids["root"],
        ]

    def test_depth(self) -> None:
        store, ids = make_plant()
        assert graph.get_depth(store.table, ids["seed"]) == 0
        assert graph.get_depth(store.table, ids["branch"]) == 2

    def test_path_through_common_ancestor(self) -> None:
        store, ids = make_plant()
        path = graph.get_path(store.table, ids["leaf"], ids["root"])
        assert path == [ids["leaf"], ids["trunk"], ids["seed"], ids["root"]]

    def test_path_to_self(self) -> None:
        store, ids = make_plant()
        assert graph.get_path(store.table, ids["leaf"], ids["leaf"]) == [ids["leaf"]]

    def test_path_unknown_handle(self) -> None:
        store, ids = make_plant()
        assert graph.get_path(store.table, ids["leaf"], 999) is None

    def test_pre_and_post_order(self) -> None:
        store, ids = make_plant()
        pre = list(graph.traverse_pre_order(store.table, ids["trunk"]))
        post = list(graph.traverse_post_order(store.table, ids["trunk"]))
        assert pre == [ids["trunk"], ids["leaf"], ids["branch"]]
        assert post == [ids["leaf"], ids["branch"], ids["trunk"]]

    def test_subtree_size_and_mass(self) -> None:
        store, ids = make_plant()
        assert graph.subtree_size(store.table, ids["trunk"]) == 3
        expected = 0.04 + 0.015 + 0.02
        assert abs(graph.subtree_mass(store.table, ids["trunk"]) - expected) < 1e-6


class TestFilters:
    def test_segments_by_type(self) -> None:
        store, ids = make_plant()
        assert graph.segments_by_type(store.table, SegmentType.ROOT) == [ids["root"]]
        assert graph.segments_by_type(store.table, SegmentType.SEED) == [ids["seed"]]

    def test_active_segments_skip_dead(self) -> None:
        store, ids = make_plant()
        store.set_health_and_stress(ids["leaf"], health=0.5, stress=1.0)
        assert ids["leaf"] not in graph.active_segments(store.table)
        assert len(graph.active_segments(store.table)) == 4


class TestInvariantChecker:
    """Tests for the structural invariant checker."""

    def test_healthy_tree_has_no_violations(self) -> None:
        store, _ = make_plant()
        assert graph.invariant_violations(store.table, store.seed_id) == []

    def test_detects_broken_parent_pointer(self) -> None:
        store, ids = make_plant()
        store.table.parents[ids["leaf"]] = ids["root"]
        assert graph.invariant_violations(store.table, store.seed_id)

    def test_detects_orphan(self) -> None:
        store, ids = make_plant()
        store.table.detach(ids["trunk"])
        problems = graph.invariant_violations(store.table, store.seed_id)
        assert any("no parent" in p for p in problems)

    def test_detects_cycle(self) -> None:
        store, ids = make_plant()
        table = store.table
        table.children[ids["leaf"]].append(ids["trunk"])
        assert graph.invariant_violations(table, store.seed_id)

    def test_detects_missing_seed(self) -> None:
        store, _ = make_plant()
        store.table.kinds[store.seed_id] = None
        store.table.parents[store.seed_id] = NO_PARENT
        assert graph.invariant_violations(store.table, store.seed_id) == [
            f"seed {store.seed_id} is missing"
        ]
