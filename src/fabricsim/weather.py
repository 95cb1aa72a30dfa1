from __future__ import annotations

import logging
import random
from typing import Tuple

from fabricsim import catalog
from fabricsim.models import GameState, WeatherCondition

logger = logging.getLogger(__name__)


def outdoor_offset(state: GameState) -> float:
    """Season plus current weather, in degrees over the base ambient."""

    season = catalog.SEASONS[state.season].ambient_modifier
    weather = catalog.WEATHER[state.weather_condition].ambient_modifier
    return float(season) + float(weather)


def ambient_temp(state: GameState) -> float:
    return catalog.AMBIENT_TEMP + float(catalog.region_config(state.region_id).ambient_offset) + outdoor_offset(state)


def pick_weather(rng: random.Random) -> Tuple[WeatherCondition, int]:
    roll = rng.random()
    acc = 0.0
    chosen = WeatherCondition.CLEAR
    for cond, cfg in catalog.WEATHER.items():
        acc += cfg.chance
        if roll < acc:
            chosen = cond
            break
    cfg = catalog.WEATHER[chosen]
    return chosen, rng.randint(cfg.min_ticks, cfg.max_ticks)


def step_weather(state: GameState, rng: random.Random, enabled: bool = True) -> None:
    """Advance the season counter and the current weather spell by one tick."""

    if not enabled:
        return

    state.season_tick_counter += 1
    if state.season_tick_counter >= catalog.SEASONS[state.season].duration_ticks:
        order = catalog.SEASON_ORDER
        state.season = order[(order.index(state.season) + 1) % len(order)]
        state.season_tick_counter = 0
        state.log("weather", f"{catalog.SEASONS[state.season].label} has arrived")
        logger.info("tick %s: season changed to %s", state.tick, state.season.value)

    state.weather_ticks_remaining -= 1
    if state.weather_ticks_remaining > 0:
        return
    cond, ticks = pick_weather(rng)
    if cond != state.weather_condition:
        state.log("weather", f"weather turned {catalog.WEATHER[cond].label.lower()}")
    state.weather_condition = cond
    state.weather_ticks_remaining = ticks
    logger.debug("tick %s: weather %s for %s ticks", state.tick, cond.value, ticks)
