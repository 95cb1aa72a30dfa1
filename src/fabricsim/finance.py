from __future__ import annotations

import logging
from typing import Dict, List

from fabricsim import catalog
from fabricsim.errors import CommandRejected, RejectKind, require, require_funds
from fabricsim.grid import mixed_env_penalized, zone_membership, zone_revenue_bonus
from fabricsim.models import (
    Cabinet,
    CustomerType,
    EnergySource,
    FinanceBreakdown,
    GameState,
    Generator,
    InsuranceType,
    Loan,
    StockStats,
    TrafficStats,
    Zone,
)
from fabricsim.network import network_revenue_factor, served_by_cabinet
from fabricsim.power import effective_power_price, energy_cost_multiplier, has_tech, server_efficiency

logger = logging.getLogger(__name__)

INCOME_HISTORY_LEN = 10


def cabinet_revenue(
    state: GameState,
    cab: Cabinet,
    member_of: List[Zone],
    mixed: bool,
    served: float,
) -> float:
    """Base server revenue of one cabinet for the current tick, before incident and backup factors."""

    if not cab.is_active or int(cab.server_count) <= 0:
        return 0.0
    cust = catalog.CUSTOMER_TYPES[cab.customer_type]
    env = catalog.ENVIRONMENTS[cab.environment]
    rev = float(cab.server_count) * catalog.REVENUE_PER_SERVER * cust.revenue_multiplier * env.revenue_multiplier

    zone_mult = 1.0 + zone_revenue_bonus(cab, member_of)
    if mixed:
        zone_mult -= catalog.MIXED_ENV_REVENUE_PENALTY
    rev *= zone_mult

    bonus = float(state.prestige.bonuses.revenue_multiplier)
    if has_tech(state, "high_density"):
        bonus += catalog.HIGH_DENSITY_REVENUE_BONUS
    if has_tech(state, "gpu_clusters") and cab.customer_type == CustomerType.AI_TRAINING:
        bonus += catalog.GPU_CLUSTERS_AI_REVENUE_BONUS
    rev *= 1.0 + bonus

    rev *= server_efficiency(cab.server_age)
    if float(cab.heat_level) >= catalog.THROTTLE_TEMP:
        rev *= 0.5
    return rev * network_revenue_factor(served)


def server_revenue(
    state: GameState,
    zones: List[Zone],
    traffic: TrafficStats,
    incident_multiplier: float = 1.0,
    coverage: float = 1.0,
) -> Dict[str, float]:
    """Return {"server": total, "zone_bonus": share of the total due to zone bonuses}."""

    member = zone_membership(zones)
    mixed = mixed_env_penalized(state.cabinets)
    served = served_by_cabinet(traffic)
    factor = max(0.0, float(incident_multiplier)) * max(0.0, min(1.0, float(coverage)))

    total = 0.0
    zone_part = 0.0
    for cab in state.cabinets:
        # A cabinet without a working leaf has no path to the fabric.
        s = served.get(cab.id, 0.0) if cab.leaf_active else 0.0
        rev = cabinet_revenue(state, cab, member.get(cab.id, []), cab.id in mixed, s) * factor
        total += rev
        bonus = zone_revenue_bonus(cab, member.get(cab.id, []))
        if bonus > 0 and rev > 0:
            zone_part += rev - rev / (1.0 + bonus)
    return {"server": total, "zone_bonus": zone_part}


def carbon_tax_rate(tick: int) -> float:
    rate = 0.0
    for start, r in catalog.CARBON_TAX_SCHEDULE:
        if int(tick) >= start:
            rate = r
    return rate


def carbon_tax(state: GameState) -> float:
    kw = float(state.power.total_power_w) / 1000.0
    per_kw = float(catalog.ENERGY_SOURCES[state.energy_source].carbon_per_kw)
    region = catalog.region_config(state.region_id)
    return kw * per_kw * carbon_tax_rate(state.tick) * catalog.CARBON_TAX_SCALE * region.carbon_tax_multiplier


def power_unit_cost(state: GameState) -> float:
    """Cost of one kW for one tick at today's prices."""

    region = catalog.region_config(state.region_id)
    reduction = float(state.prestige.bonuses.power_cost_reduction)
    return (
        catalog.POWER_COST_PER_KW
        * effective_power_price(state)
        * energy_cost_multiplier(state)
        * region.power_cost_multiplier
        * max(0.0, 1.0 - reduction)
    )


def operating_costs(state: GameState, fin: FinanceBreakdown) -> None:
    unit = power_unit_cost(state)
    fin.power_cost = float(state.power.it_power_w) / 1000.0 * unit
    fin.cooling_cost = float(state.power.cooling_power_w) / 1000.0 * unit * catalog.COOLING[state.cooling_type].operating_multiplier
    fin.insurance_premiums = sum(catalog.INSURANCE[p].premium_per_tick for p in state.insurance_policies)
    if state.on_backup_power:
        fin.generator_fuel = sum(float(g.fuel_cost_per_tick) for g in state.generators)
    fin.security_maintenance = float(catalog.SECURITY_TIERS[state.security_tier].maintenance_per_tick)
    fin.redundancy_maintenance = float(catalog.POWER_REDUNDANCY[state.power_redundancy].maintenance_per_tick)
    fin.staff_salaries = sum(float(s.salary_per_tick) for s in state.staff)
    fin.carbon_tax = carbon_tax(state)


# Loans


def loan_payment(principal: float, rate: float, term: int) -> float:
    p = float(principal)
    r = float(rate)
    n = max(1, int(term))
    if r <= 0:
        return p / n
    return p * r / (1.0 - (1.0 + r) ** (-n))


def take_loan(state: GameState, option_index: int) -> Loan:
    idx = int(option_index)
    require(0 <= idx < len(catalog.LOAN_OPTIONS), RejectKind.VALIDATION, f"no loan option #{idx}")
    require(len(state.loans) < catalog.MAX_ACTIVE_LOANS, RejectKind.CAP, f"at most {catalog.MAX_ACTIVE_LOANS} loans")
    opt = catalog.LOAN_OPTIONS[idx]
    loan = Loan(
        id=state.new_id("loan"),
        label=opt.label,
        principal=float(opt.principal),
        remaining=float(opt.principal),
        interest_rate=float(opt.interest_rate),
        payment_per_tick=round(loan_payment(opt.principal, opt.interest_rate, opt.term_ticks), 4),
        ticks_remaining=int(opt.term_ticks),
    )
    state.loans.append(loan)
    state.money += loan.principal
    state.counters.loans_taken += 1
    state.log("finance", f"took {opt.label}: {opt.principal:,.0f}")
    logger.info("loan %s taken (%.0f over %s ticks)", loan.id, opt.principal, opt.term_ticks)
    return loan


def repay_loan(state: GameState, loan_id: str) -> float:
    loan = next((l for l in state.loans if l.id == loan_id), None)
    if loan is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no loan {loan_id}")
    amount = round(float(loan.remaining), 2)
    require_funds(state.money, amount, f"repaying {loan.label}")
    state.money -= amount
    state.loans = [l for l in state.loans if l.id != loan_id]
    state.counters.loans_repaid += 1
    state.log("finance", f"repaid {loan.label} early")
    return amount


def service_loans(state: GameState, fin: FinanceBreakdown) -> None:
    kept: List[Loan] = []
    for loan in state.loans:
        interest = float(loan.remaining) * float(loan.interest_rate)
        payment = min(float(loan.payment_per_tick), float(loan.remaining) + interest)
        loan.remaining = max(0.0, float(loan.remaining) + interest - payment)
        loan.ticks_remaining = max(0, int(loan.ticks_remaining) - 1)
        fin.loan_payments += payment
        if loan.remaining <= 0.01 or loan.ticks_remaining <= 0:
            fin.loan_payments += float(loan.remaining)
            state.counters.loans_repaid += 1
            state.log("finance", f"{loan.label} paid off")
            continue
        kept.append(loan)
    state.loans = kept


# Insurance, generators, energy


def buy_insurance(state: GameState, policy: InsuranceType) -> None:
    p = InsuranceType(policy)
    require(p not in state.insurance_policies, RejectKind.VALIDATION, f"{p.value} insurance already held")
    state.insurance_policies.append(p)
    state.log("finance", f"bought {catalog.INSURANCE[p].label}")


def cancel_insurance(state: GameState, policy: InsuranceType) -> None:
    p = InsuranceType(policy)
    require(p in state.insurance_policies, RejectKind.VALIDATION, f"no {p.value} insurance to cancel")
    state.insurance_policies = [x for x in state.insurance_policies if x != p]
    state.log("finance", f"cancelled {catalog.INSURANCE[p].label}")


def buy_generator(state: GameState, option_index: int) -> Generator:
    idx = int(option_index)
    require(0 <= idx < len(catalog.GENERATOR_OPTIONS), RejectKind.VALIDATION, f"no generator option #{idx}")
    opt = catalog.GENERATOR_OPTIONS[idx]
    require_funds(state.money, opt.cost, opt.label)
    state.money -= opt.cost
    gen = Generator(id=state.new_id("gen"), kind=opt.kind, capacity_w=opt.capacity_w, fuel_cost_per_tick=opt.fuel_cost_per_tick)
    state.generators.append(gen)
    state.log("power", f"installed {opt.label}")
    return gen


def upgrade_power_redundancy(state: GameState) -> None:
    nxt = catalog.next_in_order(catalog.REDUNDANCY_ORDER, state.power_redundancy)
    require(nxt is not None, RejectKind.CAP, "power redundancy already at maximum")
    cost = catalog.POWER_REDUNDANCY[nxt].upgrade_cost
    require_funds(state.money, cost, f"{nxt.value} redundancy")
    state.money -= cost
    state.power_redundancy = nxt
    state.log("power", f"power redundancy upgraded to {nxt.value}")


def set_energy_source(state: GameState, source: EnergySource) -> None:
    src = EnergySource(source)
    require(src != state.energy_source, RejectKind.VALIDATION, f"already on {src.value}")
    cost = catalog.ENERGY_SOURCES[src].install_cost
    require_funds(state.money, cost, f"switching to {src.value}")
    state.money -= cost
    state.energy_source = src
    state.log("power", f"energy source switched to {src.value}")


# Stock price


def infrastructure_value(state: GameState) -> float:
    value = 0.0
    for cab in state.cabinets:
        value += catalog.CABINET_COST
        value += float(cab.server_count) * catalog.SERVER_COST * server_efficiency(cab.server_age)
        if cab.has_leaf_switch:
            value += catalog.LEAF_COST
    value += catalog.SPINE_COST * len(state.spine_switches)
    return value * 0.5


def net_worth(state: GameState) -> float:
    debt = sum(float(l.remaining) for l in state.loans)
    return float(state.money) - debt + infrastructure_value(state)


def stock_price(state: GameState) -> float:
    hist = state.income_history
    avg_income = (sum(hist) / len(hist)) if hist else 0.0
    base = (net_worth(state) + catalog.STOCK_INCOME_MULTIPLE * avg_income) / catalog.STOCK_VALUATION_DIVISOR
    price = base * (1.0 + float(state.reputation_score) / 100.0)
    return round(max(1.0, price), 2)


def stock_stats(history: List[float]) -> StockStats:
    if not history:
        return StockStats()
    first = float(history[0])
    last = float(history[-1])
    change = ((last - first) / first * 100.0) if first > 0 else 0.0
    return StockStats(price=last, low=min(history), high=max(history), change_pct=round(change, 2))


def update_stock(state: GameState, history_len: int) -> None:
    state.stock_history.append(stock_price(state))
    n = max(1, int(history_len))
    if len(state.stock_history) > n:
        state.stock_history = state.stock_history[-n:]
    state.stock = stock_stats(state.stock_history)


def check_valuation_milestones(state: GameState) -> List[str]:
    reached: List[str] = []
    for m in catalog.VALUATION_MILESTONES:
        if m.milestone_id in state.valuation_milestones:
            continue
        if float(state.stock.price) >= m.target_price:
            state.valuation_milestones.append(m.milestone_id)
            state.money += m.reward
            reached.append(m.milestone_id)
            state.log("finance", f"valuation milestone {m.milestone_id}: +{m.reward:,.0f}")
            logger.info("valuation milestone %s reached", m.milestone_id)
    return reached


# Settlement


def settle(
    state: GameState,
    fin: FinanceBreakdown,
    zones: List[Zone],
    traffic: TrafficStats,
    incident_multiplier: float,
) -> FinanceBreakdown:
    """Fill in the tick's breakdown and book it into money.

    Contract revenue, SLA and incident penalties are already accumulated in
    ``fin`` by the contract and incident phases.
    """

    rev = server_revenue(state, zones, traffic, incident_multiplier, state.power.backup_coverage)
    fin.server_revenue = rev["server"]
    fin.zone_bonus_revenue = rev["zone_bonus"]
    fin.patent_income = catalog.PATENT_INCOME_PER_TICK * len(state.patents)
    operating_costs(state, fin)
    service_loans(state, fin)

    fin.total_revenue = fin.server_revenue + fin.contract_revenue + fin.patent_income
    fin.total_expenses = (
        fin.power_cost
        + fin.cooling_cost
        + fin.loan_payments
        + fin.insurance_premiums
        + fin.generator_fuel
        + fin.security_maintenance
        + fin.redundancy_maintenance
        + fin.staff_salaries
        + fin.carbon_tax
        + fin.sla_penalties
        + fin.incident_penalties
    )
    fin.net_income = fin.total_revenue - fin.total_expenses

    state.money += fin.net_income
    state.counters.total_revenue += fin.total_revenue
    state.counters.total_expenses += fin.total_expenses
    state.income_history.append(round(fin.net_income, 2))
    if len(state.income_history) > INCOME_HISTORY_LEN:
        state.income_history = state.income_history[-INCOME_HISTORY_LEN:]
    state.finance = fin
    return fin


def check_bankruptcy(state: GameState, grace_ticks: int, floor: float) -> bool:
    if float(state.money) >= 0:
        state.ticks_in_debt = 0
        return False
    state.ticks_in_debt += 1
    if float(state.money) < float(floor) or int(state.ticks_in_debt) >= int(grace_ticks):
        state.bankrupt = True
        state.log("finance", "the company is bankrupt")
        logger.warning("bankrupt at tick %s (money %.2f, %s ticks in debt)", state.tick, state.money, state.ticks_in_debt)
        return True
    return False
