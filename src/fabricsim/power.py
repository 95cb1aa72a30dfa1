from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple

from fabricsim import catalog
from fabricsim.grid import (
    aisle_counts,
    compute_zones,
    containment_bonus,
    mixed_env_penalized,
    occupancy,
    spacing_heat,
    zone_heat_factor,
    zone_membership,
)
from fabricsim.models import Cabinet, Environment, GameState, PowerStats, StaffRole, Zone
from fabricsim.weather import ambient_temp


def has_tech(state: GameState, tech_id: str) -> bool:
    return str(tech_id) in state.unlocked_tech


def staff_count(state: GameState, role: StaffRole) -> int:
    return sum(1 for s in state.staff if s.role == role)


def cooling_rate(state: GameState, failure_factor: float = 1.0) -> float:
    """Effective per-tick cooling capacity of the facility."""

    rate = float(catalog.COOLING[state.cooling_type].cooling_rate)
    if has_tech(state, "hot_aisle"):
        rate += catalog.HOT_AISLE_COOLING_BONUS
    if has_tech(state, "immersion_cooling"):
        rate += catalog.IMMERSION_COOLING_BONUS
    specialists = staff_count(state, StaffRole.COOLING_SPECIALIST)
    rate *= 1.0 + catalog.COOLING_SPECIALIST_BONUS * specialists + float(state.prestige.bonuses.cooling_efficiency)
    return max(0.0, rate * max(0.0, float(failure_factor)))


def cooling_overhead_factor(avg_heat: float) -> float:
    h = float(avg_heat)
    if h <= 30:
        return 0.15
    if h <= 40:
        return 0.20
    if h <= 50:
        return 0.30
    if h <= 60:
        return 0.45
    if h <= 70:
        return 0.65
    if h <= 80:
        return 0.90
    return 1.2 + (h - 80.0) * 0.05


def management_bonus(cabinets: List[Cabinet]) -> float:
    servers = sum(int(c.server_count) for c in cabinets if c.is_active and c.environment == Environment.MANAGEMENT)
    return min(catalog.MANAGEMENT_BONUS_CAP, catalog.MANAGEMENT_BONUS_PER_SERVER * servers)


def cabinet_power_w(cab: Cabinet) -> float:
    if not cab.is_active:
        return 0.0
    mult = catalog.CUSTOMER_TYPES[cab.customer_type].power_multiplier
    w = float(cab.server_count) * catalog.SERVER_POWER_W * mult
    if cab.leaf_active:
        w += catalog.LEAF_POWER_W
    return w


def it_power_w(state: GameState) -> float:
    total = sum(cabinet_power_w(c) for c in state.cabinets)
    total += catalog.SPINE_POWER_W * sum(1 for s in state.spine_switches if s.is_active)
    return total


def overhead_reduction(state: GameState) -> float:
    keep = 1.0 - float(catalog.COOLING[state.cooling_type].overhead_reduction)
    if has_tech(state, "variable_fans"):
        keep *= 1.0 - catalog.VARIABLE_FANS_OVERHEAD_REDUCTION
    if has_tech(state, "immersion_cooling"):
        keep *= 1.0 - catalog.IMMERSION_OVERHEAD_REDUCTION
    keep *= 1.0 - management_bonus(state.cabinets)
    keep *= 1.0 - containment_bonus(state)
    return 1.0 - keep


def backup_coverage(state: GameState, total_power_w: float, outage: bool) -> float:
    """Fraction of load kept running; 1.0 unless the utility grid is down."""

    if not outage:
        return 1.0
    capacity = sum(float(g.capacity_w) for g in state.generators)
    covered = 1.0 if total_power_w <= 0 else min(1.0, capacity / float(total_power_w))
    protection = float(catalog.POWER_REDUNDANCY[state.power_redundancy].protection)
    return covered + (1.0 - covered) * protection


def compute_power(
    state: GameState,
    surge_multiplier: float = 1.0,
    cooling_failure: float = 1.0,
    outage: bool = False,
) -> PowerStats:
    it = it_power_w(state) * max(1.0, float(surge_multiplier))
    amb = ambient_temp(state)
    active = [c for c in state.cabinets if c.is_active]
    if active:
        avg_heat = float(round(sum(float(c.heat_level) for c in active) / len(active)))
        max_heat = max(float(c.heat_level) for c in active)
    else:
        avg_heat = amb
        max_heat = amb

    cooling = 0.0
    pue = 0.0
    if it > 0:
        cooling = float(round(it * cooling_overhead_factor(avg_heat) * (1.0 - overhead_reduction(state))))
        pue = round((it + cooling) / it, 2)

    throttled = sum(1 for c in active if float(c.heat_level) >= catalog.THROTTLE_TEMP)
    total = it + cooling
    return PowerStats(
        it_power_w=round(it, 2),
        cooling_power_w=cooling,
        total_power_w=round(total, 2),
        pue=pue,
        avg_heat=avg_heat,
        max_heat=round(max_heat, 2),
        cooling_rate=round(cooling_rate(state, cooling_failure), 3),
        throttled_cabinets=throttled,
        backup_coverage=round(backup_coverage(state, total, outage), 4),
    )


def cabinet_load_heat(cab: Cabinet, occ, member_of: List[Zone], mixed: bool) -> float:
    cust = catalog.CUSTOMER_TYPES[cab.customer_type]
    env = catalog.ENVIRONMENTS[cab.environment]
    load = float(cab.server_count) * catalog.HEAT_PER_SERVER * cust.heat_multiplier * env.heat_multiplier
    if cab.leaf_active:
        load += catalog.HEAT_PER_LEAF
    load += spacing_heat(cab, occ)
    return max(0.0, load) * zone_heat_factor(cab, member_of, mixed)


def next_heat_levels(
    state: GameState,
    rate: float,
    heat_spike: float = 0.0,
    zones: Optional[List[Zone]] = None,
) -> Dict[str, float]:
    """Return the next heat level per cabinet id.

    Active cabinets approach an equilibrium set by their load, cooling and
    aisle alignment; inactive ones decay toward ambient.
    """

    amb = ambient_temp(state)
    occ = occupancy(state.cabinets)
    zones = compute_zones(state.cabinets) if zones is None else zones
    member = zone_membership(zones)
    mixed = mixed_env_penalized(state.cabinets)
    decay = min(0.9, catalog.BASE_AMBIENT_DISSIPATION * max(0.0, rate) / 2.0)

    out: Dict[str, float] = {}
    for cab in state.cabinets:
        heat = float(cab.heat_level)
        if cab.is_active:
            load = cabinet_load_heat(cab, occ, member.get(cab.id, []), cab.id in mixed)
            eq = amb + catalog.EQUILIBRIUM_LOAD_GAIN * load - catalog.EQUILIBRIUM_COOLING_GAIN * rate
            opposing, same = aisle_counts(cab, occ)
            eq += catalog.SAME_FACING_PENALTY * same - catalog.AISLE_CONTAINMENT_RELIEF * opposing
            eq += float(heat_spike)
        else:
            eq = amb
        eq = min(catalog.HEAT_CEILING, max(amb, eq))
        step = catalog.HEAT_RISE_RATE if eq > heat else decay
        nxt = heat + (eq - heat) * step
        out[cab.id] = round(min(catalog.HEAT_CEILING, max(amb, nxt)), 2)
    return out


def step_power_market(multiplier: float, spike_ticks: int, rng: random.Random) -> Tuple[float, int]:
    m = float(multiplier)
    m += rng.uniform(-catalog.POWER_MARKET_VOLATILITY, catalog.POWER_MARKET_VOLATILITY)
    m += catalog.POWER_MARKET_MEAN_REVERSION * (1.0 - m)
    m = min(catalog.POWER_MARKET_MAX, max(catalog.POWER_MARKET_MIN, m))

    spikes = max(0, int(spike_ticks))
    if spikes > 0:
        spikes -= 1
    elif rng.random() < catalog.POWER_MARKET_SPIKE_CHANCE:
        spikes = catalog.POWER_MARKET_SPIKE_TICKS
    return round(m, 4), spikes


def effective_power_price(state: GameState) -> float:
    m = float(state.power_price_multiplier)
    if int(state.power_spike_ticks) > 0:
        m *= catalog.POWER_MARKET_SPIKE_MULTIPLIER
    return m


def energy_cost_multiplier(state: GameState) -> float:
    # On-site sources only cover their availability window; the rest is bought from the grid.
    src = catalog.ENERGY_SOURCES[state.energy_source]
    rel = max(0.0, min(1.0, float(src.reliability)))
    return rel * float(src.cost_multiplier) + (1.0 - rel)


def server_efficiency(age: int) -> float:
    life = float(catalog.SERVER_LIFESPAN_TICKS)
    start = catalog.REVENUE_DECAY_START * life
    a = float(age)
    if a <= start:
        return 1.0
    if a >= life:
        return catalog.EFFICIENCY_FLOOR
    frac = (a - start) / (life - start)
    return 1.0 - frac * (1.0 - catalog.EFFICIENCY_FLOOR)
