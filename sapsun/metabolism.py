"""
Metabolism: photosynthesis, respiration, stress and death.

Run once per tick after hydraulics, in three committed stages:

    photosynthesis  leaves and tips turn sun + water into sugar
    respiration     every living segment pays upkeep from its buffer
    stress/health   stress integrates shortfalls, health follows stress

A segment whose stress reaches the death threshold is deactivated by the
store's death rule. Dead segments stay in the tree but no longer
produce, consume or conduct. The seed never dies.

Starvation stress is proportional to the fractional shortfall
(deficit / cost), so a fully starved segment gains `starvation_stress_rate`
per tick. That outpaces the partial recovery it gets from water alone,
which is what makes sustained starvation lethal.
"""

from typing import NamedTuple

import jax.numpy as jnp
import jax.random as jr
from jax import Array

from sapsun.config import SegmentType
from sapsun.hydraulics import MarkerKind, MarkerPool, spawn_where
from sapsun.store import PlantStore

ROOT_FEED_MARKER_CHANCE = 0.25


class MetabolismReport(NamedTuple):
    """Per-tick metabolism totals."""

    produced: float  # Sugar made by photosynthesis
    respired: float  # Sugar burned for upkeep
    starving: int  # Segments that could not pay upkeep
    died: list[int]  # Handles that died this tick


class HealthSummary(NamedTuple):
    healthy: int
    stressed: int  # Alive with stress above 0.5
    dead: int


def photosynthesize(store: PlantStore, markers: MarkerPool, key: Array) -> float:
    """
    Produce sugar in every active leaf or childless segment with enough water.

    produced = rate * sun_factor * water_factor * (10 * radius), where
    sun_factor keeps a stored-starch floor at night and water_factor
    saturates at `photosynthesis_saturation` pressure.

    Returns:
        Total sugar produced (also added to the global pool).
    """
    config = store.config
    table = store.table
    topo = table.topology()
    f = table.fields

    living = topo.occupied & f.active
    green = (topo.kind == SegmentType.LEAF.value) | (topo.child_count == 0)
    working = living & green & (f.pressure >= config.min_water_for_photosynthesis)

    night = config.night_photosynthesis
    sun_factor = night + store.climate.sun_intensity * (1.0 - night)
    water_factor = jnp.minimum(1.0, f.pressure / config.photosynthesis_saturation)
    produced = config.photosynthesis_rate * sun_factor * water_factor * (f.radius * 10.0)
    produced = jnp.where(working, produced, 0.0)

    water_cost = produced * config.water_per_sugar
    store.set_pressures(f.pressure - water_cost * 0.1)
    store.set_sugar_stores(f.sugar_store + produced)
    store.set_concentrations(f.concentration + produced * 0.1)

    total = float(jnp.sum(produced))
    if total > 0:
        store.modify_resources(sugar=total)

    rolls = jr.uniform(key, (table.capacity,))
    spawn = working & (produced > 0) & topo.has_parent & (
        rolls < 0.1 + sun_factor * water_factor * 0.25
    )
    spawn_where(
        markers, table, spawn, jnp.arange(table.capacity), topo.parent,
        MarkerKind.PHLOEM, 0.6 + produced * 3.0,
    )
    return total


def respire(
    store: PlantStore, markers: MarkerPool, key: Array
) -> tuple[float, int, list[int]]:
    """
    Charge upkeep to every living segment's local buffer.

    Starvation stress goes through the death rule, so a segment whose
    shortfall takes it to the threshold dies here rather than waiting
    for the stress update, which would pull it back with water recovery.

    Returns:
        (sugar respired, number of starving segments, handles that died)
    """
    config = store.config
    table = store.table
    topo = table.topology()
    f = table.fields

    living = topo.occupied & f.active
    cost = config.respiration_cost * (1.0 + f.radius * config.respiration_radius_factor)
    fed = living & (f.sugar_store >= cost)
    starving = living & ~fed

    deficit = jnp.where(starving, cost - f.sugar_store, 0.0)
    shortfall = deficit / cost

    store.set_sugar_stores(
        jnp.where(fed, f.sugar_store - cost, jnp.where(starving, 0.0, f.sugar_store))
    )
    store.set_concentrations(
        jnp.where(
            fed,
            f.concentration - cost * 0.05,
            jnp.where(starving, f.concentration - 0.01, f.concentration),
        )
    )
    died = store.set_stresses(
        jnp.where(starving, f.stress + shortfall * config.starvation_stress_rate, f.stress)
    )

    # Roots that eat show sugar being pulled down to them.
    rolls = jr.uniform(key, (table.capacity,))
    feeding_roots = fed & (topo.kind == SegmentType.ROOT.value) & topo.has_parent
    spawn = feeding_roots & (rolls < ROOT_FEED_MARKER_CHANCE)
    spawn_where(
        markers, table, spawn, topo.parent, jnp.arange(table.capacity),
        MarkerKind.PHLOEM, 0.7,
    )

    respired = jnp.sum(jnp.where(fed, cost, 0.0)) + jnp.sum(
        jnp.where(starving, f.sugar_store, 0.0)
    )
    return float(respired), int(jnp.sum(starving)), died


def update_stress_and_health(store: PlantStore) -> list[int]:
    """
    Integrate stress from water and sugar conditions and relax health.

    Returns:
        Handles of segments that died.
    """
    config = store.config
    f = store.table.fields

    dehydration = jnp.where(
        f.pressure < config.dehydration_threshold,
        config.dehydration_stress_rate * (config.dehydration_threshold - f.pressure),
        0.0,
    )
    recovering = (f.pressure > config.recovery_pressure) & (f.sugar_store > config.recovery_sugar)
    partial = ~recovering & (f.pressure > config.partial_recovery_pressure)
    recovery = jnp.where(
        recovering,
        config.recovery_rate,
        jnp.where(partial, config.recovery_rate * 0.5, 0.0),
    )

    stress = jnp.clip(f.stress + dehydration - recovery, 0.0, 1.0)
    target = 1.0 - stress * config.health_stress_weight
    health = f.health + (target - f.health) * config.health_smoothing
    return store.set_health_and_stresses(health, stress)


def update(store: PlantStore, markers: MarkerPool, key: Array) -> MetabolismReport:
    """Run one tick of metabolism on the store."""
    photo_key, respire_key = jr.split(key)
    produced = photosynthesize(store, markers, photo_key)
    respired, starving, starved = respire(store, markers, respire_key)
    died = starved + update_stress_and_health(store)
    return MetabolismReport(
        produced=produced, respired=respired, starving=starving, died=died
    )


def health_summary(store: PlantStore) -> HealthSummary:
    """Count healthy, stressed and dead segments."""
    healthy = stressed = dead = 0
    for segment in store.table.segments().values():
        if not segment.active:
            dead += 1
        elif segment.stress > 0.5:
            stressed += 1
        else:
            healthy += 1
    return HealthSummary(healthy=healthy, stressed=stressed, dead=dead)
