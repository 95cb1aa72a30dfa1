from __future__ import annotations

import copy
import logging
import random
from dataclasses import dataclass
from typing import Any, Iterable, Optional, cast

from fabricsim import catalog
from fabricsim.contracts import evaluate_contracts, generate_offers, refresh_offers, tick_rfps
from fabricsim.finance import check_bankruptcy, check_valuation_milestones, settle, update_stock
from fabricsim.grid import compute_zones
from fabricsim.incidents import (
    IncidentEffects,
    active_effects,
    check_catastrophic,
    purge_resolved,
    sample_new_incidents,
    sync_hardware_flags,
    tick_down,
)
from fabricsim.market import step_market
from fabricsim.models import FinanceBreakdown, GameState, PrestigeState, TickResult
from fabricsim.network import compute_traffic, demand_for_hour, fabric_degraded, hour_of_day
from fabricsim.power import compute_power, cooling_rate, next_heat_levels, step_power_market
from fabricsim.progression import check_achievements, step_progression
from fabricsim.weather import ambient_temp, step_weather

logger = logging.getLogger(__name__)

DEFAULT_SEED = 20260101


@dataclass
class EngineConfig:
    minutes_per_tick: int = catalog.MINUTES_PER_TICK
    incident_chance: float = 0.02
    max_active_incidents: int = 3
    contract_offer_interval: int = 50
    rfp_interval: int = 80
    bankruptcy_grace_ticks: int = 50
    bankruptcy_floor: float = -50_000.0
    stock_history_len: int = 50
    event_log_len: int = 200
    incidents_enabled: bool = True
    competitors_enabled: bool = True
    weather_enabled: bool = True


def _to_jsonable(x: object) -> object:
    if isinstance(x, tuple):
        return [_to_jsonable(v) for v in x]
    if isinstance(x, list):
        return [_to_jsonable(v) for v in x]
    if isinstance(x, dict):
        return {str(k): _to_jsonable(v) for k, v in x.items()}
    return x


def _to_tuple(x: object) -> object:
    if isinstance(x, list):
        return tuple(_to_tuple(v) for v in x)
    if isinstance(x, dict):
        return {k: _to_tuple(v) for k, v in x.items()}
    return x


def rng_from_state(state: GameState) -> random.Random:
    rng = random.Random()
    seed = int(getattr(state, "rng_seed", DEFAULT_SEED) or DEFAULT_SEED)
    st = getattr(state, "rng_state", None)
    if st is not None:
        try:
            rng.setstate(cast(tuple[Any, ...], _to_tuple(st)))
            return rng
        except (TypeError, ValueError):
            logger.debug("stored RNG state unusable, reseeding from %s", seed)
    rng.seed(seed)
    return rng


def persist_rng_state(state: GameState, rng: random.Random) -> None:
    state.rng_state = _to_jsonable(rng.getstate())


def effective_demand(state: GameState) -> float:
    d = float(state.demand_multiplier)
    if int(state.traffic_spike_ticks) > 0:
        d *= catalog.TRAFFIC_SPIKE_MULTIPLIER
    return d


def refresh_derived(state: GameState, fx: Optional[IncidentEffects] = None) -> GameState:
    """Recompute zones, power and traffic aggregates without advancing time."""

    fx = active_effects(state) if fx is None else fx
    state.zones = compute_zones(state.cabinets)
    state.power = compute_power(state, fx.surge_multiplier, fx.cooling_factor, fx.outage)
    state.traffic_stats, state.network_topology = compute_traffic(state, effective_demand(state), fx.traffic_drop)
    return state


def new_game(
    seed: Optional[int] = None,
    region_id: str = catalog.DEFAULT_REGION,
    prestige: Optional[PrestigeState] = None,
) -> GameState:
    p = copy.deepcopy(prestige) if prestige is not None else PrestigeState()
    state = GameState(
        money=catalog.STARTING_MONEY + float(p.bonuses.starting_money_bonus),
        region_id=region_id if region_id in catalog.REGIONS else catalog.DEFAULT_REGION,
        rng_seed=int(seed) if seed is not None else DEFAULT_SEED,
        prestige=p,
    )
    state.adjust_reputation(catalog.STARTING_REPUTATION + float(p.bonuses.reputation_start_bonus) - state.reputation_score)
    state.demand_multiplier = demand_for_hour(0.0)
    state.power.avg_heat = ambient_temp(state)
    state.power.max_heat = ambient_temp(state)

    rng = rng_from_state(state)
    state.contract_offers = generate_offers(state, rng)
    persist_rng_state(state, rng)
    refresh_derived(state)
    state.log("game", f"new facility in {catalog.region_config(state.region_id).name}")
    return state


def _advance_clock(state: GameState, cfg: EngineConfig, rng: random.Random) -> None:
    state.tick += 1
    state.hour_of_day = hour_of_day(state.tick, cfg.minutes_per_tick)
    state.demand_multiplier = demand_for_hour(state.hour_of_day)
    if int(state.traffic_spike_ticks) > 0:
        state.traffic_spike_ticks -= 1
    elif rng.random() < catalog.TRAFFIC_SPIKE_CHANCE:
        state.traffic_spike_ticks = catalog.TRAFFIC_SPIKE_TICKS


def _power_and_heat(state: GameState, fx: IncidentEffects) -> None:
    zones = compute_zones(state.cabinets)
    rate = cooling_rate(state, fx.cooling_factor)
    heats = next_heat_levels(state, rate, fx.heat_spike, zones)
    for cab in state.cabinets:
        cab.heat_level = heats[cab.id]
        if cab.is_active and int(cab.server_count) > 0:
            cab.server_age += 1
    state.zones = zones
    state.on_backup_power = bool(fx.outage and state.generators)
    state.power = compute_power(state, fx.surge_multiplier, fx.cooling_factor, fx.outage)
    if state.cabinets:
        hottest = max(float(c.heat_level) for c in state.cabinets)
        state.counters.max_cabinet_heat = max(float(state.counters.max_cabinet_heat), hottest)


def simulate_tick(state: GameState, cfg: Optional[EngineConfig] = None) -> GameState:
    """Advance one tick and return the new snapshot; the input is left untouched."""

    cfg = cfg or EngineConfig()
    if state.bankrupt:
        return state

    s = copy.deepcopy(state)
    rng = rng_from_state(s)
    result = TickResult(tick=int(s.tick) + 1)
    fin = FinanceBreakdown()

    _advance_clock(s, cfg, rng)
    step_weather(s, rng, cfg.weather_enabled)

    purge_resolved(s, result)
    sync_hardware_flags(s)
    fx = active_effects(s)

    s.power_price_multiplier, s.power_spike_ticks = step_power_market(s.power_price_multiplier, s.power_spike_ticks, rng)

    _power_and_heat(s, fx)

    traffic, topo = compute_traffic(s, effective_demand(s), fx.traffic_drop)

    spawned_before = len(result.incidents_spawned)
    check_catastrophic(s, traffic, result)
    if len(result.incidents_spawned) > spawned_before:
        fx = active_effects(s)
        s.power = compute_power(s, fx.surge_multiplier, fx.cooling_factor, fx.outage)
        traffic, topo = compute_traffic(s, effective_demand(s), fx.traffic_drop)
    s.traffic_stats, s.network_topology = traffic, topo

    evaluate_contracts(s, s.zones, fabric_degraded(traffic), fin, result)
    refresh_offers(s, rng, cfg.contract_offer_interval)
    tick_rfps(s, rng, cfg.rfp_interval)

    tick_down(s, rng, fin, result)
    if cfg.incidents_enabled:
        sample_new_incidents(s, cfg.incident_chance, cfg.max_active_incidents, rng, result)

    settle(s, fin, s.zones, traffic, fx.revenue_multiplier)
    check_bankruptcy(s, cfg.bankruptcy_grace_ticks, cfg.bankruptcy_floor)

    step_market(s, rng, cfg.competitors_enabled)

    step_progression(s, fin, result)
    update_stock(s, cfg.stock_history_len)
    check_valuation_milestones(s)
    result.achievements_unlocked = check_achievements(s)

    result.finance = fin
    s.last_tick = result
    if len(s.event_log) > int(cfg.event_log_len):
        s.event_log = s.event_log[-int(cfg.event_log_len):]
    persist_rng_state(s, rng)

    logger.debug(
        "tick %s: money=%.2f net=%.2f pue=%.2f max_heat=%.1f served=%.3f",
        s.tick,
        s.money,
        fin.net_income,
        s.power.pue,
        s.power.max_heat,
        traffic.served_fraction,
    )
    return s


def run_ticks(
    state: GameState,
    n: int,
    cfg: Optional[EngineConfig] = None,
    commands: Iterable[Any] = (),
) -> GameState:
    """Apply queued commands, then advance ``n`` ticks (stopping early on bankruptcy)."""

    from fabricsim.commands import apply_command

    cfg = cfg or EngineConfig()
    for cmd in commands:
        state = apply_command(state, cmd)
    for _ in range(max(0, int(n))):
        if state.bankrupt:
            break
        state = simulate_tick(state, cfg)
    return state
