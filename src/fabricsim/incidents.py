from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from fabricsim import catalog
from fabricsim.errors import CommandRejected, RejectKind, require, require_funds
from fabricsim.models import (
    ActiveIncident,
    FinanceBreakdown,
    GameState,
    IncidentCategory,
    IncidentEffect,
    StaffRole,
    TickResult,
    TrafficStats,
)
from fabricsim.network import fabric_down
from fabricsim.power import has_tech, staff_count

logger = logging.getLogger(__name__)

RUNAWAY_MARGIN = 1.0


@dataclass
class IncidentEffects:
    surge_multiplier: float = 1.0
    cooling_factor: float = 1.0
    heat_spike: float = 0.0
    revenue_multiplier: float = 1.0
    traffic_drop: float = 1.0
    outage: bool = False


def unresolved(state: GameState) -> List[ActiveIncident]:
    return [i for i in state.active_incidents if not i.resolved]


def active_effects(state: GameState) -> IncidentEffects:
    fx = IncidentEffects()
    electricians = staff_count(state, StaffRole.ELECTRICIAN)
    for inc in unresolved(state):
        mag = float(inc.magnitude)
        if inc.effect == IncidentEffect.POWER_SURGE:
            extra = max(0.0, mag - 1.0) * max(0.0, 1.0 - catalog.ELECTRICIAN_SURGE_REDUCTION * electricians)
            fx.surge_multiplier *= 1.0 + extra
        elif inc.effect == IncidentEffect.COOLING_FAILURE:
            fx.cooling_factor *= max(0.0, 1.0 - mag)
        elif inc.effect == IncidentEffect.HEAT_SPIKE:
            fx.heat_spike += mag
        elif inc.effect == IncidentEffect.REVENUE_PENALTY:
            fx.revenue_multiplier *= mag
        elif inc.effect == IncidentEffect.TRAFFIC_DROP:
            fx.traffic_drop *= mag
        elif inc.effect == IncidentEffect.POWER_OUTAGE:
            fx.outage = True
    return fx


def sync_hardware_flags(state: GameState) -> None:
    """Derive failed/tripped hardware from the unresolved incidents."""

    for cab in state.cabinets:
        cab.leaf_failed = False
        cab.tripped = False
    for sp in state.spine_switches:
        sp.failed = False

    for inc in unresolved(state):
        if inc.effect != IncidentEffect.HARDWARE_FAILURE or not inc.affected_hardware_id:
            continue
        target = catalog.INCIDENT_CATALOG[inc.incident_type].hardware_target
        if target == "spine":
            sp = state.spine_by_id(inc.affected_hardware_id)
            if sp is not None:
                sp.failed = True
        else:
            cab = state.cabinet_by_id(inc.affected_hardware_id)
            if cab is None:
                continue
            if target == "leaf":
                cab.leaf_failed = True
            else:
                cab.tripped = True


def purge_resolved(state: GameState, result: TickResult) -> None:
    for inc in state.active_incidents:
        if inc.resolved:
            result.incidents_closed.append(inc.id)
    state.active_incidents = unresolved(state)


def _pick_target(state: GameState, target: Optional[str], rng: random.Random) -> Optional[str]:
    if target == "spine":
        ids = [s.id for s in state.spine_switches if s.is_active]
    elif target == "leaf":
        ids = [c.id for c in state.cabinets if c.leaf_active]
    elif target == "cabinet":
        ids = [c.id for c in state.cabinets if c.is_active]
    else:
        return None
    return rng.choice(ids) if ids else None


def spawn_incident(
    state: GameState,
    incident_type: str,
    rng: Optional[random.Random] = None,
    result: Optional[TickResult] = None,
    target_id: Optional[str] = None,
) -> Optional[ActiveIncident]:
    d = catalog.INCIDENT_CATALOG[incident_type]
    if d.hardware_target and target_id is None:
        target_id = _pick_target(state, d.hardware_target, rng or random.Random(state.tick))
        if target_id is None:
            return None

    inc = ActiveIncident(
        id=state.new_id("inc"),
        incident_type=d.incident_type,
        label=d.label,
        category=d.category,
        severity=d.severity,
        effect=d.effect,
        magnitude=float(d.magnitude),
        resolve_cost=float(d.resolve_cost),
        duration=int(d.duration),
        ticks_remaining=int(d.duration),
        affected_hardware_id=target_id,
        started_tick=int(state.tick),
    )
    state.active_incidents.append(inc)
    sync_hardware_flags(state)
    if result is not None:
        result.incidents_spawned.append(inc.id)
    state.log("incident", f"{d.label} ({d.severity.value})")
    logger.info("incident %s spawned: %s", inc.id, d.incident_type)
    return inc


def _candidates(state: GameState, category: IncidentCategory) -> List[str]:
    out: List[str] = []
    for d in catalog.INCIDENT_CATALOG.values():
        if d.category != category or d.incident_type in catalog.TRIGGERED_INCIDENTS:
            continue
        if d.hardware_target == "spine" and not any(s.is_active for s in state.spine_switches):
            continue
        if d.hardware_target == "leaf" and not any(c.leaf_active for c in state.cabinets):
            continue
        out.append(d.incident_type)
    return out


def intrusion_defense(state: GameState) -> float:
    d = catalog.SECURITY_TIERS[state.security_tier].intrusion_defense
    d += catalog.SECURITY_OFFICER_DEFENSE * staff_count(state, StaffRole.SECURITY_OFFICER)
    return min(catalog.MAX_INTRUSION_DEFENSE, float(d))


def category_chances(state: GameState, base_chance: float) -> List[Tuple[IncidentCategory, float]]:
    ops = catalog.OPS_TIERS[state.ops_tier]
    base = float(base_chance) * (1.0 - ops.incident_spawn_reduction)
    region = catalog.region_config(state.region_id)
    source = catalog.ENERGY_SOURCES[state.energy_source]
    protection = catalog.POWER_REDUNDANCY[state.power_redundancy].protection

    thermal = base * (1.0 + max(0.0, float(state.power.max_heat) - catalog.HEAT_RISK_START) / catalog.HEAT_RISK_SPAN)
    if has_tech(state, "redundant_cooling"):
        thermal *= 1.0 - catalog.REDUNDANT_COOLING_FAILURE_REDUCTION
    power = base * (2.0 - float(source.reliability)) * (1.0 - 0.5 * protection)
    security = base * (1.0 - intrusion_defense(state))
    disaster = base * (0.5 + region.disaster_risk)
    return [
        (IncidentCategory.THERMAL, thermal),
        (IncidentCategory.POWER, power),
        (IncidentCategory.SECURITY, security),
        (IncidentCategory.DISASTER, disaster),
    ]


def sample_new_incidents(state: GameState, base_chance: float, max_active: int, rng: random.Random, result: TickResult) -> None:
    # Nothing to break in an empty hall.
    if not state.cabinets:
        return

    for category, p in category_chances(state, base_chance):
        if len(unresolved(state)) >= int(max_active):
            break
        if rng.random() >= p:
            continue
        options = _candidates(state, category)
        if options:
            spawn_incident(state, rng.choice(options), rng=rng, result=result)

    region = catalog.region_config(state.region_id)
    source = catalog.ENERGY_SOURCES[state.energy_source]
    outage_p = region.grid_instability * catalog.GRID_OUTAGE_SCALE * (2.0 - float(source.reliability))
    if rng.random() < outage_p and not any(i.incident_type == "grid_outage" for i in unresolved(state)):
        spawn_incident(state, "grid_outage", rng=rng, result=result)


def check_catastrophic(state: GameState, traffic: TrafficStats, result: TickResult) -> None:
    """Escalate heat-ceiling breaches and full fabric loss into incidents."""

    tripped_targets = {i.affected_hardware_id for i in unresolved(state) if i.incident_type == "thermal_runaway"}
    for cab in state.cabinets:
        if not cab.is_active or cab.id in tripped_targets:
            continue
        if float(cab.heat_level) >= catalog.HEAT_CEILING - RUNAWAY_MARGIN:
            logger.warning("cabinet %s hit the heat ceiling (%.1f C)", cab.id, cab.heat_level)
            spawn_incident(state, "thermal_runaway", result=result, target_id=cab.id)

    if fabric_down(traffic) and not any(i.incident_type == "fabric_outage" for i in unresolved(state)):
        logger.warning("all spine switches are down with %s flows stranded", traffic.total_flows)
        spawn_incident(state, "fabric_outage", result=result)


def _escalate(state: GameState, inc: ActiveIncident, fin: FinanceBreakdown) -> None:
    idx = catalog.SEVERITY_ORDER.index(inc.severity)
    if idx + 1 < len(catalog.SEVERITY_ORDER):
        inc.severity = catalog.SEVERITY_ORDER[idx + 1]
        inc.resolve_cost = round(float(inc.resolve_cost) * catalog.ESCALATION_COST_MULTIPLIER, 2)
        inc.ticks_remaining = int(inc.duration)
        inc.escalations += 1
        state.counters.incidents_escalated += 1
        state.adjust_reputation(-catalog.ESCALATION_REPUTATION_PENALTY)
        state.log("incident", f"{inc.label} escalated to {inc.severity.value}")
        logger.info("incident %s escalated to %s", inc.id, inc.severity.value)
        return

    # Unattended critical incident burns out with lasting damage.
    fin.incident_penalties += float(inc.resolve_cost) * catalog.CASCADE_COST_FRACTION
    state.adjust_reputation(-catalog.CASCADE_REPUTATION_PENALTY)
    inc.resolved = True
    state.log("incident", f"{inc.label} expired unresolved")
    logger.warning("incident %s expired unresolved; cascading penalty applied", inc.id)


def tick_down(state: GameState, rng: random.Random, fin: FinanceBreakdown, result: TickResult) -> None:
    ops = catalog.OPS_TIERS[state.ops_tier]
    speed = float(ops.auto_resolve_speed_bonus)
    if has_tech(state, "auto_failover"):
        speed += catalog.AUTO_FAILOVER_SPEEDUP

    for inc in unresolved(state):
        if int(inc.started_tick) == int(state.tick):
            continue
        step = 1
        if speed > 0 and rng.random() < speed:
            step += 1
        inc.ticks_remaining = max(0, int(inc.ticks_remaining) - step)
        if inc.ticks_remaining > 0:
            continue
        if ops.auto_resolves:
            inc.resolved = True
            inc.auto_resolved = True
            state.counters.incidents_auto_resolved += 1
            state.log("incident", f"{inc.label} auto-resolved")
            logger.info("incident %s auto-resolved", inc.id)
        else:
            _escalate(state, inc, fin)
    sync_hardware_flags(state)


def resolve_cost(state: GameState, inc: ActiveIncident) -> float:
    cost = float(inc.resolve_cost) * (1.0 - catalog.OPS_TIERS[state.ops_tier].resolve_cost_reduction)
    for policy in state.insurance_policies:
        cfg = catalog.INSURANCE[policy]
        if cfg.covered_effect == inc.effect:
            cost -= cfg.coverage
    return max(0.0, round(cost, 2))


def resolve_incident(state: GameState, incident_id: str) -> float:
    inc = next((i for i in unresolved(state) if i.id == incident_id), None)
    if inc is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no open incident {incident_id}")
    cost = resolve_cost(state, inc)
    require_funds(state.money, cost, f"resolving {inc.label}")
    state.money -= cost
    inc.resolved = True
    state.counters.incidents_resolved += 1
    state.adjust_reputation(1.0)
    sync_hardware_flags(state)
    state.log("incident", f"{inc.label} resolved for {cost:,.0f}")
    logger.info("incident %s resolved (cost %.2f)", inc.id, cost)
    return cost


def drill_ready(state: GameState) -> bool:
    if state.last_drill_tick is None:
        return True
    return int(state.tick) - int(state.last_drill_tick) >= catalog.DRILL_COOLDOWN_TICKS


def drill_score(state: GameState, roll: float) -> float:
    score = 30.0 + intrusion_defense(state) * 20.0
    for tech, pts in catalog.DRILL_TECH_SCORES.items():
        if has_tech(state, tech):
            score += pts
    score += catalog.POWER_REDUNDANCY[state.power_redundancy].protection * 10.0
    score += 2.0 * len(state.staff)
    return score + float(roll)


def run_drill(state: GameState, rng: random.Random) -> bool:
    """Simulated disaster-recovery exercise. Never creates a real incident."""

    require(drill_ready(state), RejectKind.VALIDATION, "drill is cooling down")
    require_funds(state.money, catalog.DRILL_COST, "a drill")
    state.money -= catalog.DRILL_COST
    score = drill_score(state, rng.uniform(0.0, 30.0))
    passed = score >= catalog.DRILL_PASS_THRESHOLD
    state.last_drill_tick = int(state.tick)
    state.last_drill_passed = passed
    state.counters.drills_run += 1
    if passed:
        state.counters.drills_passed += 1
        state.adjust_reputation(catalog.DRILL_REPUTATION_BONUS)
    else:
        state.adjust_reputation(catalog.DRILL_REPUTATION_PENALTY)
    state.log("drill", f"drill {'passed' if passed else 'failed'} (score {score:.0f})")
    return passed
