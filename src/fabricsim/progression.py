from __future__ import annotations

import logging
from typing import Callable, Dict, List

from fabricsim import catalog
from fabricsim.compliance import tick_compliance
from fabricsim.errors import RejectKind, require, require_funds
from fabricsim.models import (
    CoolingType,
    EnergySource,
    FinanceBreakdown,
    GameState,
    OpsTier,
    PrestigeBonuses,
    PrestigeState,
    ResearchProgress,
    SecurityTier,
    SuiteTier,
    TickResult,
)

logger = logging.getLogger(__name__)


# Research and patents


def start_research(state: GameState, tech_id: str) -> ResearchProgress:
    tech = catalog.TECH_TREE.get(str(tech_id))
    require(tech is not None, RejectKind.VALIDATION, f"unknown tech {tech_id}")
    require(tech.tech_id not in state.unlocked_tech, RejectKind.VALIDATION, f"{tech.label} already unlocked")
    require(state.active_research is None, RejectKind.CAP, "research lab is busy")
    if tech.prerequisite is not None:
        require(
            tech.prerequisite in state.unlocked_tech,
            RejectKind.VALIDATION,
            f"{tech.label} needs {catalog.TECH_TREE[tech.prerequisite].label}",
        )
    require_funds(state.money, tech.cost, tech.label)
    state.money -= tech.cost
    state.active_research = ResearchProgress(tech_id=tech.tech_id, ticks_remaining=int(tech.research_ticks))
    state.log("research", f"started {tech.label}")
    return state.active_research


def tick_research(state: GameState, result: TickResult) -> None:
    rp = state.active_research
    if rp is None:
        return
    rp.ticks_remaining -= 1
    if rp.ticks_remaining > 0:
        return
    state.unlocked_tech.append(rp.tech_id)
    state.active_research = None
    result.research_completed = rp.tech_id
    state.log("research", f"{catalog.TECH_TREE[rp.tech_id].label} unlocked")
    logger.info("research %s completed at tick %s", rp.tech_id, state.tick)


def patent_tech(state: GameState, tech_id: str) -> None:
    t = str(tech_id)
    require(t in state.unlocked_tech, RejectKind.VALIDATION, f"{t} is not unlocked")
    require(t not in state.patents, RejectKind.VALIDATION, f"{t} is already patented")
    require(len(state.patents) < catalog.MAX_PATENTS, RejectKind.CAP, f"at most {catalog.MAX_PATENTS} patents")
    require_funds(state.money, catalog.PATENT_COST, "a patent filing")
    state.money -= catalog.PATENT_COST
    state.patents.append(t)
    state.log("research", f"patented {catalog.TECH_TREE[t].label}")


# Tiers


def ops_tier_problem(state: GameState, tier: OpsTier) -> List[str]:
    cfg = catalog.OPS_TIERS[tier]
    problems: List[str] = []
    if len(state.staff) < cfg.min_staff:
        problems.append(f"needs {cfg.min_staff} staff")
    missing = [t for t in cfg.required_techs if t not in state.unlocked_tech]
    if missing:
        problems.append(f"needs tech: {', '.join(missing)}")
    if float(state.reputation_score) < cfg.min_reputation:
        problems.append(f"needs reputation {cfg.min_reputation:.0f}")
    if catalog.SUITE_ORDER.index(state.suite_tier) < catalog.SUITE_ORDER.index(cfg.min_suite):
        problems.append(f"needs {cfg.min_suite.value} suite")
    return problems


def upgrade_ops_tier(state: GameState) -> OpsTier:
    nxt = catalog.next_in_order(catalog.OPS_ORDER, state.ops_tier)
    require(nxt is not None, RejectKind.CAP, "ops tier already at maximum")
    problems = ops_tier_problem(state, nxt)
    require(not problems, RejectKind.VALIDATION, "; ".join(problems))
    cost = catalog.OPS_TIERS[nxt].upgrade_cost
    require_funds(state.money, cost, f"{nxt.value} ops")
    state.money -= cost
    state.ops_tier = nxt
    state.log("ops", f"operations upgraded to {nxt.value}")
    return nxt


def upgrade_security_tier(state: GameState) -> SecurityTier:
    nxt = catalog.next_in_order(catalog.SECURITY_ORDER, state.security_tier)
    require(nxt is not None, RejectKind.CAP, "security tier already at maximum")
    cost = catalog.SECURITY_TIERS[nxt].cost
    require_funds(state.money, cost, f"{nxt.value} security")
    state.money -= cost
    state.security_tier = nxt
    state.log("security", f"security upgraded to {nxt.value}")
    return nxt


# Reputation


def reputation_drift(state: GameState, fin: FinanceBreakdown) -> float:
    """Small per-tick reputation trend from operations and income."""

    delta = 0.0
    open_incidents = sum(1 for i in state.active_incidents if not i.resolved)
    delta -= 0.02 * open_incidents
    if state.active_contracts and all(c.compliant for c in state.active_contracts):
        delta += 0.02
    if float(state.power.max_heat) >= catalog.CRITICAL_TEMP:
        delta -= 0.05
    if fin.net_income > 0:
        delta += 0.01
    elif fin.net_income < 0:
        delta -= 0.01
    state.adjust_reputation(delta)
    return delta


# Achievements


def _ops_at_least(state: GameState, tier: OpsTier) -> bool:
    return catalog.OPS_ORDER.index(state.ops_tier) >= catalog.OPS_ORDER.index(tier)


ACHIEVEMENT_CHECKS: Dict[str, Callable[[GameState], bool]] = {
    "first_cabinet": lambda s: len(s.cabinets) >= 1,
    "first_spine": lambda s: len(s.spine_switches) >= 1,
    "full_rack": lambda s: any(c.server_count >= catalog.MAX_SERVERS_PER_CABINET and c.has_leaf_switch for c in s.cabinets),
    "ten_cabinets": lambda s: len(s.cabinets) >= 10,
    "water_cooling": lambda s: s.cooling_type == CoolingType.WATER,
    "first_loan": lambda s: s.counters.loans_taken >= 1,
    "debt_free": lambda s: s.counters.loans_taken >= 1 and not s.loans,
    "survive_incident": lambda s: s.counters.incidents_resolved >= 1,
    "five_incidents": lambda s: s.counters.incidents_resolved >= 5,
    "hundred_k": lambda s: s.money >= 100_000,
    "million": lambda s: s.money >= 1_000_000,
    "low_pue": lambda s: 0 < s.power.pue <= 1.30,
    "max_spines": lambda s: len(s.spine_switches) >= catalog.suite_config(s.suite_tier).max_spines,
    "thermal_crisis": lambda s: s.counters.max_cabinet_heat >= catalog.CRITICAL_TEMP,
    "first_contract": lambda s: s.counters.contracts_accepted >= 1,
    "contract_complete": lambda s: s.counters.contracts_completed >= 1,
    "gold_contract": lambda s: s.counters.gold_contracts_accepted >= 1,
    "three_contracts": lambda s: len(s.active_contracts) >= 3,
    "zone_contract": lambda s: s.counters.zone_contracts_completed >= 1,
    "first_zone": lambda s: len(s.zones) >= 1,
    "first_generator": lambda s: len(s.generators) >= 1,
    "first_research": lambda s: len(s.unlocked_tech) >= 1,
    "tech_savvy": lambda s: len(s.unlocked_tech) >= 6,
    "excellent_rep": lambda s: s.reputation_score >= 75,
    "hardware_refresh": lambda s: s.counters.hardware_refreshes >= 1,
    "suite_upgrade": lambda s: s.suite_tier != SuiteTier.STARTER,
    "enterprise_suite": lambda s: s.suite_tier == SuiteTier.ENTERPRISE,
    "first_insurance": lambda s: len(s.insurance_policies) >= 1,
    "fully_insured": lambda s: len(set(s.insurance_policies)) >= len(catalog.INSURANCE),
    "drill_passed": lambda s: s.counters.drills_passed >= 1,
    "stock_100": lambda s: s.stock.price >= 100,
    "stock_500": lambda s: s.stock.price >= 500,
    "first_patent": lambda s: len(s.patents) >= 1,
    "all_patents": lambda s: len(s.patents) >= 5,
    "rfp_won": lambda s: s.counters.rfp_wins >= 1,
    "first_hire": lambda s: s.counters.staff_hired >= 1,
    "full_staff": lambda s: len(s.staff) >= catalog.suite_config(s.suite_tier).max_staff,
    "green_power": lambda s: s.energy_source != EnergySource.GRID_MIXED,
    "locked_down": lambda s: catalog.SECURITY_ORDER.index(s.security_tier) >= catalog.SECURITY_ORDER.index(SecurityTier.HIGH_SECURITY),
    "market_leader": lambda s: bool(s.competitors) and s.player_market_share >= 50,
    "monopoly": lambda s: s.counters.contracts_beaten_competitors >= 5,
    "rivalry": lambda s: s.counters.outperform_streak >= 100,
    "script_kiddie": lambda s: _ops_at_least(s, OpsTier.MONITORING),
    "sre": lambda s: _ops_at_least(s, OpsTier.AUTOMATION),
    "platform_engineer": lambda s: _ops_at_least(s, OpsTier.ORCHESTRATION),
    "lights_out": lambda s: s.counters.incidents_auto_resolved >= 20,
    "game_saved": lambda s: s.counters.saves >= 1,
}

if set(ACHIEVEMENT_CHECKS) != set(catalog.ACHIEVEMENT_IDS):
    raise ValueError("achievement checks out of sync with the achievement catalog")


def check_achievements(state: GameState) -> List[str]:
    """Unlock every achievement whose condition now holds; returns the new ids."""

    new: List[str] = []
    have = set(state.achievements)
    for a in catalog.ACHIEVEMENTS:
        if a.achievement_id in have:
            continue
        if ACHIEVEMENT_CHECKS[a.achievement_id](state):
            state.achievements.append(a.achievement_id)
            new.append(a.achievement_id)
            state.log("achievement", f"unlocked: {a.label}")
    return new


# Prestige


def prestige_problems(state: GameState) -> List[str]:
    problems: List[str] = []
    if state.suite_tier != SuiteTier.ENTERPRISE:
        problems.append("needs the enterprise suite")
    if float(state.money) < catalog.PRESTIGE_MIN_MONEY:
        problems.append(f"needs {catalog.PRESTIGE_MIN_MONEY:,.0f} money")
    if float(state.reputation_score) < catalog.PRESTIGE_MIN_REPUTATION:
        problems.append(f"needs reputation {catalog.PRESTIGE_MIN_REPUTATION:.0f}")
    if len(state.cabinets) < catalog.PRESTIGE_MIN_CABINETS:
        problems.append(f"needs {catalog.PRESTIGE_MIN_CABINETS} cabinets")
    if int(state.prestige.level) >= catalog.PRESTIGE_MAX_LEVEL:
        problems.append("already at the maximum prestige level")
    return problems


def can_prestige(state: GameState) -> bool:
    return not prestige_problems(state)


def bonuses_for_level(level: int) -> PrestigeBonuses:
    n = max(0, int(level))
    return PrestigeBonuses(
        revenue_multiplier=round(catalog.PRESTIGE_REVENUE_STEP * n, 4),
        power_cost_reduction=round(catalog.PRESTIGE_POWER_STEP * n, 4),
        starting_money_bonus=catalog.PRESTIGE_MONEY_STEP * n,
        cooling_efficiency=round(catalog.PRESTIGE_COOLING_STEP * n, 4),
        reputation_start_bonus=catalog.PRESTIGE_REPUTATION_STEP * n,
    )


def next_prestige(state: GameState) -> PrestigeState:
    """Prestige record carried into the next run; raises when not eligible."""

    problems = prestige_problems(state)
    require(not problems, RejectKind.VALIDATION, "; ".join(problems))
    cur = state.prestige
    level = int(cur.level) + 1
    return PrestigeState(
        level=level,
        total_prestige_points=int(cur.total_prestige_points) + 1 + len(state.cabinets) // 10,
        bonuses=bonuses_for_level(level),
        highest_tick_reached=max(int(cur.highest_tick_reached), int(state.tick)),
        highest_revenue_reached=max(float(cur.highest_revenue_reached), float(state.counters.total_revenue)),
        total_runs_completed=int(cur.total_runs_completed) + 1,
    )


def step_progression(state: GameState, fin: FinanceBreakdown, result: TickResult) -> None:
    tick_research(state, result)
    tick_compliance(state)
    reputation_drift(state, fin)
