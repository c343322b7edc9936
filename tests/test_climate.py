"""
Tests for the climate driver.

These tests verify the day cycle functions, the rain process and the
soil water model.
"""

import math

import jax.numpy as jnp
import jax.random as jr

from sapsun import climate
from sapsun.config import ClimateConfig, ClimateState, SimConfig
from sapsun.store import PlantStore


class TestDayCycle:
    """Tests for the deterministic day-cycle functions."""

    def test_day_progress_wraps(self) -> None:
        assert climate.compute_day_progress(0, 1200) == 0.0
        assert climate.compute_day_progress(600, 1200) == 0.5
        assert climate.compute_day_progress(1200, 1200) == 0.0

    def test_noon_is_brightest(self) -> None:
        config = ClimateConfig()
        assert math.isclose(climate.compute_sun_intensity(0.5, config), 1.0)

    def test_sun_never_below_floor(self) -> None:
        config = ClimateConfig()
        for i in range(100):
            sun = climate.compute_sun_intensity(i / 100, config)
            assert config.min_sun_intensity <= sun <= config.max_sun_intensity

    def test_zero_floor_allows_darkness(self) -> None:
        config = ClimateConfig(min_sun_intensity=0.0)
        assert climate.compute_sun_intensity(0.0, config) == 0.0

    def test_afternoon_peak_temperature(self) -> None:
        config = ClimateConfig()
        assert math.isclose(climate.compute_temperature(0.4, config), 30.0)
        assert math.isclose(climate.compute_temperature(0.9, config), 10.0, abs_tol=1e-9)

    def test_humidity_cycle(self) -> None:
        assert math.isclose(climate.compute_humidity(0.0), 0.8)
        assert math.isclose(climate.compute_humidity(0.5), 0.2)


class TestWeather:
    """Tests for the rain chain and soil moisture."""

    def test_rain_stops_with_certain_stop(self) -> None:
        config = ClimateConfig(rain_stop_chance=1.0)
        assert not climate.step_rain(jr.PRNGKey(0), True, 0.5, config)

    def test_rain_never_starts_without_chance(self) -> None:
        config = ClimateConfig(rain_start_chance=0.0)
        key = jr.PRNGKey(0)
        for subkey in jr.split(key, 20):
            assert not climate.step_rain(subkey, False, 0.9, config)

    def test_rain_is_reproducible(self) -> None:
        config = ClimateConfig(rain_start_chance=0.5)
        first = [climate.step_rain(k, False, 0.5, config) for k in jr.split(jr.PRNGKey(3), 10)]
        second = [climate.step_rain(k, False, 0.5, config) for k in jr.split(jr.PRNGKey(3), 10)]
        assert first == second

    def test_rain_wets_soil(self) -> None:
        config = ClimateConfig()
        assert math.isclose(climate.step_soil_water(0.5, True, 1.0, 20.0, config), 0.55)
        assert climate.step_soil_water(0.99, True, 1.0, 20.0, config) == 1.0

    def test_sun_dries_soil(self) -> None:
        config = ClimateConfig()
        dried = climate.step_soil_water(0.5, False, 1.0, 30.0, config)
        assert math.isclose(dried, 0.5 - config.evaporation_rate)

    def test_frost_does_not_add_water(self) -> None:
        config = ClimateConfig()
        assert climate.step_soil_water(0.5, False, 1.0, -10.0, config) == 0.5

    def test_deep_soil_is_wetter(self) -> None:
        config = ClimateConfig()
        assert jnp.isclose(climate.soil_water_at_depth(0.5, 2.0, config), 0.8)
        assert jnp.isclose(climate.soil_water_at_depth(0.5, 1.0, config), 0.65)
        assert jnp.isclose(climate.soil_water_at_depth(0.9, 5.0, config), 1.0)

    def test_depth_works_on_arrays(self) -> None:
        config = ClimateConfig()
        result = climate.soil_water_at_depth(0.5, jnp.array([0.0, -2.0]), config)
        assert jnp.allclose(result, jnp.array([0.5, 0.8]))


class TestClimateUpdate:
    """Tests for advancing the store's climate."""

    def test_tick_zero_sun_at_night_floor(self) -> None:
        """At tick 0 the day fraction is 0, so the sun sits on its floor."""
        store = PlantStore()
        state = climate.update(store, jr.PRNGKey(0))
        floor = store.config.climate.min_sun_intensity
        assert state.sun_intensity == floor
        assert state.sun_intensity > 0.0
        assert state.day_progress == 0.0

    def test_update_keeps_tick(self) -> None:
        store = PlantStore()
        store.increment_tick()
        climate.update(store, jr.PRNGKey(0))
        assert store.climate.tick == 1

    def test_day_rolls_over(self) -> None:
        config = SimConfig()
        previous = ClimateState(
            sun_intensity=0.05,
            sun_angle=0.0,
            temperature=15.0,
            humidity=0.7,
            soil_water=0.5,
            is_raining=False,
            day_progress=0.999,
            day=1,
            tick=config.ticks_per_day,
        )
        state = climate.compute_climate(previous, jr.PRNGKey(0), config)
        assert state.day == 2
        assert state.day_progress == 0.0

    def test_first_tick_is_still_day_one(self) -> None:
        store = PlantStore()
        climate.update(store, jr.PRNGKey(0))
        assert store.climate.day == 1

    def test_night_and_sun_position(self) -> None:
        store = PlantStore()
        climate.update(store, jr.PRNGKey(0))
        assert climate.is_night(store.climate)
        x, y = climate.sun_position(store.climate)
        assert -1.0 <= x <= 1.0
        assert y >= 0.0
