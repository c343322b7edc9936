"""
Tests for photosynthesis, respiration and the stress / death cycle.
"""

import jax.numpy as jnp
import jax.random as jr

from sapsun import metabolism
from sapsun.config import SegmentType, SimConfig
from sapsun.hydraulics import MarkerPool
from sapsun.store import PlantStore


def make_chain(config: SimConfig | None = None) -> tuple[PlantStore, int, int]:
    """Seed -> trunk -> leaf."""
    store = PlantStore(config)
    trunk = store.add_segment(store.seed_id, SegmentType.TRUNK, (0.0, -0.25))
    leaf = store.add_segment(trunk, SegmentType.LEAF, (0.0, -0.5))
    return store, trunk, leaf


class TestPhotosynthesis:
    """Tests for sugar production."""

    def test_leaf_produces_sugar(self) -> None:
        store, _, leaf = make_chain()
        sugar = store.resources.sugar

        produced = metabolism.photosynthesize(store, MarkerPool(store.config), jr.PRNGKey(0))

        assert produced > 0
        assert store.resources.sugar > sugar
        assert float(store.table.fields.sugar_store[leaf]) > 0

    def test_production_formula(self) -> None:
        """produced = rate * (0.15 + 0.85 sun) * min(1, p / 0.5) * 10 r"""
        store, trunk, leaf = make_chain()
        store.set_pressure(leaf, 0.5)
        sun = store.climate.sun_intensity

        produced = metabolism.photosynthesize(store, MarkerPool(store.config), jr.PRNGKey(0))

        expected = 0.5 * (0.15 + 0.85 * sun) * 1.0 * (0.015 * 10)
        assert jnp.isclose(produced, expected)
        assert jnp.isclose(store.table.fields.pressure[leaf], 0.5 - expected * 0.3 * 0.1)

    def test_dry_leaf_produces_nothing(self) -> None:
        store, _, leaf = make_chain()
        store.set_pressure(leaf, 0.1)
        produced = metabolism.photosynthesize(store, MarkerPool(store.config), jr.PRNGKey(0))
        assert produced == 0.0
        assert store.resources.sugar == 70.0

    def test_night_still_produces(self) -> None:
        """Stored starch keeps a trickle of production going at night."""
        store, _, _ = make_chain()
        store.update_climate(sun_intensity=0.0)
        produced = metabolism.photosynthesize(store, MarkerPool(store.config), jr.PRNGKey(0))
        assert produced > 0

    def test_dead_leaf_produces_nothing(self) -> None:
        store, _, leaf = make_chain()
        store.set_health_and_stress(leaf, health=0.0, stress=1.0)
        produced = metabolism.photosynthesize(store, MarkerPool(store.config), jr.PRNGKey(0))
        assert produced == 0.0


class TestRespiration:
    """Tests for upkeep and starvation."""

    def test_fed_segment_pays_upkeep(self) -> None:
        store, _, _ = make_chain()
        seed = store.seed_id
        before = float(store.table.fields.sugar_store[seed])

        metabolism.respire(store, MarkerPool(store.config), jr.PRNGKey(0))

        cost = 0.002 * (1 + 0.03 * 5)
        assert jnp.isclose(store.table.fields.sugar_store[seed], before - cost)

    def test_empty_buffer_starves(self) -> None:
        store, trunk, _ = make_chain()
        _, starving, died = metabolism.respire(store, MarkerPool(store.config), jr.PRNGKey(0))

        assert starving == 2  # trunk and leaf start with empty buffers
        assert died == []
        assert float(store.table.fields.stress[trunk]) > 0
        assert float(store.table.fields.sugar_store[trunk]) == 0.0

    def test_full_shortfall_stress(self) -> None:
        store, trunk, _ = make_chain()
        metabolism.respire(store, MarkerPool(store.config), jr.PRNGKey(0))
        assert jnp.isclose(store.table.fields.stress[trunk], store.config.starvation_stress_rate)

    def test_starvation_at_threshold_kills_during_respiration(self) -> None:
        """Water recovery later in the tick cannot save a segment starved to death."""
        store, trunk, _ = make_chain()
        store.set_health_and_stress(trunk, health=0.3, stress=0.995)

        _, _, died = metabolism.respire(store, MarkerPool(store.config), jr.PRNGKey(0))

        segment = store.segment(trunk)
        assert died == [trunk]
        assert not segment.active
        assert segment.health == 0.0
        assert segment.stress == 1.0


class TestStressAndHealth:
    """Tests for stress integration and health relaxation."""

    def test_recovery_with_water_and_sugar(self) -> None:
        store, trunk, _ = make_chain()
        store.set_sugar_store(trunk, 1.0)
        store.set_health_and_stress(trunk, health=1.0, stress=0.5)

        metabolism.update_stress_and_health(store)

        stress = 0.5 - 0.02
        health = 1.0 + ((1.0 - stress * 0.8) - 1.0) * 0.1
        assert jnp.isclose(store.table.fields.stress[trunk], stress)
        assert jnp.isclose(store.table.fields.health[trunk], health)

    def test_partial_recovery_without_sugar(self) -> None:
        store, trunk, _ = make_chain()
        store.set_health_and_stress(trunk, health=1.0, stress=0.5)
        metabolism.update_stress_and_health(store)
        assert jnp.isclose(store.table.fields.stress[trunk], 0.49)

    def test_dehydration_adds_stress(self) -> None:
        store, trunk, _ = make_chain()
        store.set_pressure(trunk, 0.0)
        store.set_health_and_stress(trunk, health=1.0, stress=0.5)
        metabolism.update_stress_and_health(store)
        assert jnp.isclose(store.table.fields.stress[trunk], 0.5 + 0.005 * 0.08)

    def test_health_summary(self) -> None:
        store, trunk, leaf = make_chain()
        store.set_health_and_stress(trunk, health=0.5, stress=0.7)
        store.set_health_and_stress(leaf, health=0.0, stress=1.0)
        summary = metabolism.health_summary(store)
        assert summary.healthy == 1
        assert summary.stressed == 1
        assert summary.dead == 1


class TestStarvation:
    """Sustained starvation is lethal; the seed is exempt."""

    def test_starving_segment_dies(self) -> None:
        config = SimConfig(starvation_stress_rate=0.2)
        store, trunk, _ = make_chain(config)
        pool = MarkerPool(config)
        key = jr.PRNGKey(0)

        died: list[int] = []
        for _ in range(20):
            key, subkey = jr.split(key)
            report = metabolism.update(store, pool, subkey)
            died.extend(report.died)

        segment = store.segment(trunk)
        assert trunk in died
        assert not segment.active
        assert segment.health == 0.0
        assert segment.stress == 1.0

    def test_starving_segment_dies_with_default_constants(self) -> None:
        """
        A watered segment with an empty buffer dies under the shipped rates.

        Starvation adds 0.012 stress per tick and water alone takes back
        0.01, so stress climbs about 0.002 per tick and crosses the
        threshold after roughly 500 ticks.
        """
        store, trunk, _ = make_chain()
        pool = MarkerPool(store.config)
        key = jr.PRNGKey(0)
        assert float(store.table.fields.pressure[trunk]) > 0.15

        died: list[int] = []
        for _ in range(600):
            store.set_sugar_store(trunk, 0.0)
            key, subkey = jr.split(key)
            died.extend(metabolism.update(store, pool, subkey).died)
            if not store.segment(trunk).active:
                break

        segment = store.segment(trunk)
        assert not segment.active
        assert segment.health == 0.0
        assert segment.stress == 1.0
        assert died.count(trunk) == 1
        assert bool(store.table.fields.active[store.seed_id])

    def test_death_is_permanent(self) -> None:
        config = SimConfig(starvation_stress_rate=0.2)
        store, trunk, _ = make_chain(config)
        pool = MarkerPool(config)
        key = jr.PRNGKey(0)
        for _ in range(20):
            key, subkey = jr.split(key)
            metabolism.update(store, pool, subkey)

        store.set_sugar_store(trunk, 50.0)
        for _ in range(5):
            key, subkey = jr.split(key)
            metabolism.update(store, pool, subkey)
        assert not store.segment(trunk).active
        assert store.segment(trunk).health == 0.0

    def test_seed_survives_starvation(self) -> None:
        config = SimConfig(starvation_stress_rate=0.2)
        store = PlantStore(config)
        store.set_sugar_store(store.seed_id, 0.0)
        store.set_pressure(store.seed_id, 0.1)  # Too dry to photosynthesize
        pool = MarkerPool(config)
        key = jr.PRNGKey(0)
        for _ in range(20):
            key, subkey = jr.split(key)
            metabolism.update(store, pool, subkey)
        seed = store.segment(store.seed_id)
        assert seed.stress == 1.0
        assert seed.active

    def test_ranges_hold(self) -> None:
        config = SimConfig(starvation_stress_rate=0.2)
        store, _, _ = make_chain(config)
        pool = MarkerPool(config)
        key = jr.PRNGKey(0)
        for _ in range(15):
            key, subkey = jr.split(key)
            metabolism.update(store, pool, subkey)
        assert store.table.is_valid()
