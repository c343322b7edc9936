"""
Climate driver: day cycle, weather and soil moisture.

Everything except rain is a deterministic function of the tick counter:

    day_progress = (tick mod ticks_per_day) / ticks_per_day
    sun          = piecewise sinusoid of day_progress, floored at night
    temperature  = base + amplitude * sin(2pi(progress + 0.1) - pi/2)
    humidity     = 0.5 + 0.3 * cos(2pi * progress)

Rain is a two-state Markov chain sampled from a JAX random key. Soil
water rises while it rains and evaporates (sun x warmth) while dry.
"""

import math

import jax.numpy as jnp
import jax.random as jr
from jax import Array

from sapsun.config import ClimateConfig, ClimateState, SimConfig
from sapsun.store import PlantStore

TWO_PI = 2.0 * math.pi


def compute_day_progress(tick: int, ticks_per_day: int) -> float:
    return (tick % ticks_per_day) / ticks_per_day


def compute_sun_intensity(day_progress: float, config: ClimateConfig) -> float:
    """
    Sun intensity in [min_sun_intensity, max_sun_intensity].

    Rising over the first quarter of the day, a full sine hump through
    the middle half, then fading to the night floor.
    """
    if day_progress < 0.25:
        intensity = math.sin(day_progress * TWO_PI) * 0.8
    elif day_progress < 0.75:
        intensity = math.sin(day_progress * math.pi)
    else:
        intensity = max(0.0, math.sin(day_progress * TWO_PI) * 0.3)
    intensity *= config.max_sun_intensity
    return max(config.min_sun_intensity, intensity)


def compute_temperature(day_progress: float, config: ClimateConfig) -> float:
    """Temperature in Celsius, peaking in the afternoon."""
    phase = (day_progress + 0.1) * TWO_PI
    return config.base_temperature + config.temperature_amplitude * math.sin(
        phase - math.pi / 2
    )


def compute_humidity(day_progress: float) -> float:
    """Humidity is highest around midnight and lowest at noon."""
    return 0.5 + 0.3 * math.cos(day_progress * TWO_PI)


def step_rain(key: Array, is_raining: bool, humidity: float, config: ClimateConfig) -> bool:
    """Advance the rain Markov chain by one tick."""
    if is_raining:
        return not bool(jr.bernoulli(key, config.rain_stop_chance))
    start_chance = min(1.0, config.rain_start_chance * (1.0 + humidity))
    return bool(jr.bernoulli(key, start_chance))


def step_soil_water(
    soil_water: float,
    is_raining: bool,
    sun_intensity: float,
    temperature: float,
    config: ClimateConfig,
) -> float:
    if is_raining:
        soil_water += config.rain_water_rate
    else:
        evaporation = sun_intensity * max(0.0, temperature / 30.0)
        soil_water -= config.evaporation_rate * evaporation
    return min(1.0, max(0.0, soil_water))


def soil_water_at_depth(
    soil_water: float | Array, depth: float | Array, config: ClimateConfig
) -> Array:
    """
    Water available to a root at `depth` meters below the surface.

    Deep soil holds moisture better, so up to `deep_soil_bonus` is added,
    saturating at `deep_soil_depth`. Works on scalars and arrays.
    """
    depth_factor = jnp.minimum(1.0, jnp.abs(depth) / config.deep_soil_depth)
    return jnp.minimum(1.0, soil_water + depth_factor * config.deep_soil_bonus)


def sun_position(climate: ClimateState) -> tuple[float, float]:
    """
    Sun position for a sky renderer.

    Returns (x, y): x runs from -1 (east) to 1 (west), y is the height
    above the horizon in [0, 1].
    """
    x = math.cos(climate.sun_angle - math.pi / 2)
    y = math.sin(climate.sun_angle - math.pi / 2)
    return x, max(0.0, y)


def is_night(climate: ClimateState) -> bool:
    return climate.sun_intensity < 0.1


def compute_climate(
    previous: ClimateState, key: Array, config: SimConfig
) -> ClimateState:
    """Climate record for the tick stored in `previous.tick`."""
    weather = config.climate
    progress = compute_day_progress(previous.tick, config.ticks_per_day)

    new_day = progress < previous.day_progress and previous.day_progress > 0.9
    day = previous.day + 1 if new_day else previous.day

    sun = compute_sun_intensity(progress, weather)
    temperature = compute_temperature(progress, weather)
    humidity = compute_humidity(progress)
    is_raining = step_rain(key, previous.is_raining, humidity, weather)
    soil_water = step_soil_water(previous.soil_water, is_raining, sun, temperature, weather)

    return ClimateState(
        sun_intensity=sun,
        sun_angle=progress * TWO_PI,
        temperature=temperature,
        humidity=humidity,
        soil_water=soil_water,
        is_raining=is_raining,
        day_progress=progress,
        day=day,
        tick=previous.tick,
    )


def update(store: PlantStore, key: Array) -> ClimateState:
    """Advance the store's climate for the current tick."""
    climate = compute_climate(store.climate, key, store.config)
    store.update_climate(
        sun_intensity=climate.sun_intensity,
        sun_angle=climate.sun_angle,
        temperature=climate.temperature,
        humidity=climate.humidity,
        soil_water=climate.soil_water,
        is_raining=climate.is_raining,
        day_progress=climate.day_progress,
        day=climate.day,
    )
    return store.climate
