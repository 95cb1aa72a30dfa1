from __future__ import annotations

import random

from fabricsim import catalog
from fabricsim.commands import apply_command
from fabricsim.contracts import (
    evaluate_contracts,
    is_compliant,
    offer_pool,
    open_rfp,
    production_servers,
    terms_from_def,
    tick_rfps,
)
from fabricsim.engine import new_game
from fabricsim.incidents import (
    _candidates,
    active_effects,
    check_catastrophic,
    resolve_cost,
    spawn_incident,
    tick_down,
)
from fabricsim.market import step_poaching
from fabricsim.network import compute_traffic, fabric_degraded
from fabricsim.models import (
    ActiveContract,
    Cabinet,
    Certification,
    ComplianceCert,
    ContractTerms,
    ContractTier,
    FinanceBreakdown,
    GameState,
    IncidentCategory,
    InsuranceType,
    OpsTier,
    PoachAttempt,
    Severity,
    SpineSwitch,
    StaffMember,
    StaffRole,
    TickResult,
    TrafficStats,
)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _terms(**kw) -> ContractTerms:
    base = dict(
        contract_type="test_tenant",
        company="Test Co",
        tier=ContractTier.BRONZE,
        revenue_per_tick=10.0,
        min_servers=0,
        max_temp=200.0,
        duration=50,
        penalty_per_tick=4.0,
        termination_ticks=3,
        completion_bonus=1_000.0,
    )
    base.update(kw)
    return ContractTerms(**base)


def _with_contract(terms: ContractTerms, ticks_remaining: int) -> GameState:
    s = new_game(seed=1)
    s.active_contracts = [ActiveContract(id="ctr-x", terms=terms, ticks_remaining=ticks_remaining)]
    return s


# Contracts


def test_contract_terminates_after_n_violations() -> None:
    s = _with_contract(_terms(min_servers=99), ticks_remaining=50)
    fin = FinanceBreakdown()
    result = TickResult(tick=1)
    for _ in range(2):
        evaluate_contracts(s, [], False, fin, result)
    _assert(len(s.active_contracts) == 1, "expected contract kept after 2 violations")
    _assert(s.active_contracts[0].consecutive_violations == 2, "expected violation streak of 2")
    evaluate_contracts(s, [], False, fin, result)
    _assert(s.active_contracts == [], "expected contract gone on the 3rd violating tick")
    _assert(result.contracts_terminated == ["ctr-x"], f"unexpected terminated list {result.contracts_terminated}")
    _assert(fin.contract_revenue == 0.0, "expected no revenue or bonus")
    _assert(fin.sla_penalties == 12.0, f"expected 3 x 4 penalties, got {fin.sla_penalties}")
    _assert(s.counters.contracts_terminated == 1, "expected termination counted")


def test_termination_wins_over_completion_on_last_tick() -> None:
    s = _with_contract(_terms(min_servers=99, termination_ticks=1), ticks_remaining=1)
    fin = FinanceBreakdown()
    evaluate_contracts(s, [], False, fin, TickResult(tick=1))
    _assert(s.counters.contracts_terminated == 1 and s.counters.contracts_completed == 0, "expected termination")
    _assert(fin.contract_revenue == 0.0, "expected no completion bonus")


def test_contract_completion_pays_bonus() -> None:
    s = _with_contract(_terms(), ticks_remaining=2)
    rep = s.reputation_score
    fin = FinanceBreakdown()
    result = TickResult(tick=1)
    evaluate_contracts(s, [], False, fin, result)
    evaluate_contracts(s, [], False, fin, result)
    _assert(result.contracts_completed == ["ctr-x"], "expected completion")
    _assert(fin.contract_revenue == 1_020.0, f"expected 2 x 10 + 1000, got {fin.contract_revenue}")
    _assert(s.reputation_score == rep + 3.0, "expected +3 reputation for a non-gold completion")


def test_violation_streak_resets_when_compliant() -> None:
    s = _with_contract(_terms(min_servers=1), ticks_remaining=50)
    fin = FinanceBreakdown()
    evaluate_contracts(s, [], False, fin, TickResult(tick=1))
    _assert(s.active_contracts[0].consecutive_violations == 1, "expected one violation with no servers")
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=1, heat_level=40.0))
    evaluate_contracts(s, [], False, fin, TickResult(tick=2))
    _assert(s.active_contracts[0].consecutive_violations == 0, "expected the streak to reset")


def test_compliance_rules() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=2, heat_level=90.0))
    terms = _terms(min_servers=2, max_temp=85.0)
    _assert(not is_compliant(s, terms, [], False), "expected too hot")
    s.cabinets[0].heat_level = 50.0
    _assert(is_compliant(s, terms, [], False), "expected compliant")
    _assert(not is_compliant(s, terms, [], True), "expected a degraded fabric to violate")
    zoned = _terms(zone_kind="customer", zone_key="crypto", zone_min_size=3)
    _assert(not is_compliant(s, zoned, [], False), "expected missing zone to violate")


def test_accept_and_cancel_contract() -> None:
    s = new_game(seed=1)
    _assert(len(s.contract_offers) == catalog.CONTRACT_OFFER_COUNT, "expected an initial offer board")
    _assert(apply_command(s, {"type": "accept_contract", "offer_index": 9}) is s, "expected bad index rejected")
    after = apply_command(s, {"type": "accept_contract", "offer_index": 0})
    _assert(len(after.active_contracts) == 1 and len(after.contract_offers) == len(s.contract_offers) - 1, "expected offer moved")
    _assert("first_contract" in after.achievements, "expected first_contract achievement")

    ac = after.active_contracts[0]
    fee = ac.terms.penalty_per_tick * ac.terms.termination_ticks
    cancelled = apply_command(after, {"type": "cancel_contract", "contract_id": ac.id})
    _assert(cancelled.active_contracts == [], "expected contract cancelled")
    _assert(cancelled.money == after.money - fee, "expected cancellation fee charged")


def test_active_contract_cap() -> None:
    s = new_game(seed=1)
    s.active_contracts = [ActiveContract(id=f"ctr-{i}", terms=_terms(), ticks_remaining=10) for i in range(3)]
    _assert(apply_command(s, {"type": "accept_contract", "offer_index": 0}) is s, "expected the 4th contract rejected")


def test_rfp_win_and_expiry() -> None:
    s = new_game(seed=1)
    rfp = open_rfp(s, random.Random(3))
    _assert(rfp is not None and len(s.rfp_offers) == 1, "expected an open RFP")
    _assert(rfp.terms.tier in (ContractTier.SILVER, ContractTier.GOLD), "expected a silver or gold RFP")
    rfp.win_chance = 1.0
    won = apply_command(s, {"type": "bid_on_rfp", "rfp_id": rfp.id})
    _assert(won.active_contracts and won.active_contracts[0].source == "rfp", "expected the RFP contract active")
    _assert(won.counters.rfp_wins == 1 and "rfp_won" in won.achievements, "expected RFP win recorded")
    _assert(won.rfp_offers == [], "expected the RFP closed")

    open_rfp(s, random.Random(4))
    s.rfp_offers[-1].ticks_remaining = 1
    n = len(s.rfp_offers)
    tick_rfps(s, random.Random(5), interval=0)
    _assert(len(s.rfp_offers) == n - 1 and s.counters.rfp_losses == 1, "expected the expired RFP lost")


def test_critical_spine_counts_as_degraded() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=4, has_leaf_switch=True))
    s.spine_switches.append(SpineSwitch(id="sp1"))
    calm, _ = compute_traffic(s, 1.0)
    _assert(calm.spine_status == {"sp1": "normal"} and not fabric_degraded(calm), "expected a lightly loaded spine healthy")
    hot, _ = compute_traffic(s, 2.2)
    _assert(hot.spine_status == {"sp1": "critical"}, f"expected 88% utilisation to be critical, got {hot.spine_utilization}")
    _assert(hot.served_fraction == 1.0, "expected every flow still served")
    _assert(fabric_degraded(hot), "expected a critical spine to degrade the fabric")

    s.cabinets[0].heat_level = 40.0
    s.active_contracts = [ActiveContract(id="ctr-x", terms=_terms(min_servers=4), ticks_remaining=50)]
    fin = FinanceBreakdown()
    evaluate_contracts(s, [], fabric_degraded(hot), fin, TickResult(tick=1))
    _assert(s.active_contracts[0].consecutive_violations == 1, "expected the SLA violated on a critical spine")
    _assert(fin.contract_revenue == 0.0 and fin.sla_penalties == 4.0, "expected a penalty instead of revenue")


def test_throttled_cabinets_do_not_count_toward_sla() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=4, heat_level=81.0))
    terms = _terms(min_servers=4, max_temp=90.0)
    _assert(production_servers(s) == 0, "expected throttled servers excluded")
    _assert(not is_compliant(s, terms, [], False), "expected a throttled cabinet to violate")
    s.cabinets[0].heat_level = 79.0
    _assert(production_servers(s) == 4, "expected servers counted below the throttle point")
    _assert(is_compliant(s, terms, [], False), "expected compliant below the throttle point")


def test_price_war_cuts_contract_revenue() -> None:
    s = _with_contract(_terms(), ticks_remaining=50)
    s.price_war_ticks = 5
    fin = FinanceBreakdown()
    evaluate_contracts(s, [], False, fin, TickResult(tick=1))
    _assert(abs(fin.contract_revenue - 8.5) < 1e-9, f"expected 15% off 10, got {fin.contract_revenue}")
    s.price_war_ticks = 0
    fin = FinanceBreakdown()
    evaluate_contracts(s, [], False, fin, TickResult(tick=2))
    _assert(abs(fin.contract_revenue - 10.0) < 1e-9, "expected full revenue after the price war")


def test_unanswered_poach_removes_staff() -> None:
    s = new_game(seed=1)
    s.staff.append(StaffMember(id="st1", name="A B", role=StaffRole.ELECTRICIAN, salary_per_tick=3.0))
    s.poach_attempts.append(
        PoachAttempt(id="poach-x", staff_id="st1", competitor_id="comp-1", competitor_name="Rival", ticks_remaining=2)
    )
    step_poaching(s, random.Random(1))
    _assert(len(s.staff) == 1 and len(s.poach_attempts) == 1, "expected the offer still open")
    step_poaching(s, random.Random(1))
    _assert(s.staff == [] and s.poach_attempts == [], "expected the staff member gone when the window closes")
    _assert(s.counters.staff_poached == 1, "expected the loss counted")


def test_compliance_contracts_need_certification() -> None:
    plain = {d.contract_type for d in offer_pool(80.0)}
    _assert("paystream" not in plain and "healthnet_emr" not in plain, "expected compliance contracts hidden without certs")
    pci = {d.contract_type for d in offer_pool(80.0, [ComplianceCert.PCI_DSS])}
    _assert({"paystream", "tradefast_hft"} <= pci and "healthnet_emr" not in pci, "expected PCI-DSS contracts offered")
    _assert("paystream" not in {d.contract_type for d in offer_pool(40.0, [ComplianceCert.PCI_DSS])}, "expected gold reputation still required")

    d = next(c for c in catalog.COMPLIANCE_CONTRACT_CATALOG if c.contract_type == "paystream")
    terms = terms_from_def(d)
    _assert(terms.required_cert == ComplianceCert.PCI_DSS, "expected the cert carried into the terms")
    s = new_game(seed=1)
    s.cabinets = [
        Cabinet(id="c1", col=0, row=0, server_count=4, heat_level=40.0),
        Cabinet(id="c2", col=1, row=0, server_count=2, heat_level=40.0),
    ]
    _assert(not is_compliant(s, terms, [], False), "expected a violation without the cert")
    s.certifications = [Certification(cert=ComplianceCert.PCI_DSS, granted_tick=0, expires_tick=100)]
    _assert(is_compliant(s, terms, [], False), "expected compliance while certified")
    s.tick = 100
    _assert(not is_compliant(s, terms, [], False), "expected a violation once the cert lapses")


# Incidents


def test_auto_resolve_marks_resolved() -> None:
    s = new_game(seed=1)
    s.ops_tier = OpsTier.AUTOMATION
    inc = spawn_incident(s, "ddos")
    s.tick += 1
    inc.ticks_remaining = 1
    tick_down(s, random.Random(1), FinanceBreakdown(), TickResult(tick=s.tick))
    _assert(inc.resolved and inc.auto_resolved, "expected auto-resolved incident to be resolved")
    _assert(s.counters.incidents_auto_resolved == 1, "expected auto-resolve counted")


def test_new_incident_not_ticked_on_spawn_tick() -> None:
    s = new_game(seed=1)
    inc = spawn_incident(s, "ddos")
    before = inc.ticks_remaining
    tick_down(s, random.Random(1), FinanceBreakdown(), TickResult(tick=s.tick))
    _assert(inc.ticks_remaining == before, "expected a freshly spawned incident left alone")


def test_unattended_incident_escalates() -> None:
    s = new_game(seed=1)
    inc = spawn_incident(s, "ddos")
    s.tick += 1
    inc.ticks_remaining = 1
    rep = s.reputation_score
    tick_down(s, random.Random(1), FinanceBreakdown(), TickResult(tick=s.tick))
    _assert(inc.severity == Severity.MAJOR and not inc.resolved, "expected minor -> major")
    _assert(inc.resolve_cost == 3_000.0, f"expected cost x1.5, got {inc.resolve_cost}")
    _assert(inc.ticks_remaining == inc.duration, "expected the timer restarted")
    _assert(s.reputation_score == rep - catalog.ESCALATION_REPUTATION_PENALTY, "expected reputation hit")

    crit = spawn_incident(s, "ransomware")
    s.tick += 1
    crit.ticks_remaining = 1
    fin = FinanceBreakdown()
    tick_down(s, random.Random(1), fin, TickResult(tick=s.tick))
    _assert(crit.resolved and not crit.auto_resolved, "expected an expired critical incident to close")
    _assert(fin.incident_penalties == 6_000.0, f"expected half the resolve cost as penalty, got {fin.incident_penalties}")


def test_leaf_failure_restored_on_resolve() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=2, has_leaf_switch=True))
    s.spine_switches.append(SpineSwitch(id="sp1"))
    inc = spawn_incident(s, "leaf_failure", target_id="c1")
    _assert(s.cabinet_by_id("c1").leaf_failed, "expected leaf failed")
    _assert(not s.cabinet_by_id("c1").leaf_active, "expected the leaf out of the fabric")
    after = apply_command(s, {"type": "resolve_incident", "incident_id": inc.id})
    _assert(after is not s, "expected resolve accepted")
    _assert(not after.cabinet_by_id("c1").leaf_failed, "expected the leaf restored")
    _assert(after.money == s.money - 5_000.0, "expected the resolve cost charged")
    _assert("survive_incident" in after.achievements, "expected survive_incident achievement")


def test_catastrophic_triggers() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=4, heat_level=109.5))
    result = TickResult(tick=1)
    check_catastrophic(s, TrafficStats(), result)
    check_catastrophic(s, TrafficStats(), result)
    runaway = [i for i in s.active_incidents if i.incident_type == "thermal_runaway"]
    _assert(len(runaway) == 1 and runaway[0].affected_hardware_id == "c1", "expected one runaway on c1")
    _assert(s.cabinet_by_id("c1").tripped, "expected the cabinet tripped")

    down = TrafficStats(total_flows=2, redirected_flows=2, total_demand_gbps=4.0, served_fraction=0.0)
    check_catastrophic(s, down, result)
    check_catastrophic(s, down, result)
    _assert(sum(1 for i in s.active_incidents if i.incident_type == "fabric_outage") == 1, "expected one fabric outage")


def test_sampling_never_picks_triggered_types() -> None:
    s = new_game(seed=1)
    s.cabinets.append(Cabinet(id="c1", col=0, row=0, server_count=1, has_leaf_switch=True))
    s.spine_switches.append(SpineSwitch(id="sp1"))
    for cat in IncidentCategory:
        picks = _candidates(s, cat)
        _assert(not set(picks) & catalog.TRIGGERED_INCIDENTS, f"triggered type sampled in {cat.value}")
    s.spine_switches = []
    _assert("spine_failure" not in _candidates(s, IncidentCategory.DISASTER), "expected spine failure needs a spine")


def test_incident_effects_and_costs() -> None:
    s = new_game(seed=1)
    spawn_incident(s, "cooling_failure")
    spawn_incident(s, "power_surge")
    fx = active_effects(s)
    _assert(abs(fx.cooling_factor - 0.6) < 1e-9, f"expected 40% cooling loss, got {fx.cooling_factor}")
    _assert(abs(fx.surge_multiplier - 1.3) < 1e-9, f"expected 1.3 surge, got {fx.surge_multiplier}")
    s.staff.append(StaffMember(id="st1", name="A B", role=StaffRole.ELECTRICIAN, salary_per_tick=3.0))
    _assert(abs(active_effects(s).surge_multiplier - 1.27) < 1e-9, "expected electricians to soften surges")

    ddos = spawn_incident(s, "ddos")
    _assert(resolve_cost(s, ddos) == 2_000.0, "expected list price under manual ops")
    s.ops_tier = OpsTier.MONITORING
    _assert(resolve_cost(s, ddos) == 1_600.0, "expected 20% ops reduction")
    s.insurance_policies.append(InsuranceType.CYBER)
    _assert(resolve_cost(s, ddos) == 0.0, "expected cyber insurance to cover the attack")


def test_drill_cooldown_and_no_incident() -> None:
    s = new_game(seed=1)
    after = apply_command(s, {"type": "run_drill"})
    _assert(after is not s and after.money == s.money - catalog.DRILL_COST, "expected drill charged")
    _assert(after.last_drill_tick == 0 and after.last_drill_passed is not None, "expected drill recorded")
    _assert(after.active_incidents == [], "expected no incident from a drill")
    _assert(apply_command(after, {"type": "run_drill"}) is after, "expected cooldown rejection")
    after.tick = catalog.DRILL_COOLDOWN_TICKS
    again = apply_command(after, {"type": "run_drill"})
    _assert(again is not after and again.counters.drills_run == 2, "expected drill allowed after cooldown")


def main() -> None:
    tests = [
        test_contract_terminates_after_n_violations,
        test_termination_wins_over_completion_on_last_tick,
        test_contract_completion_pays_bonus,
        test_violation_streak_resets_when_compliant,
        test_compliance_rules,
        test_accept_and_cancel_contract,
        test_active_contract_cap,
        test_rfp_win_and_expiry,
        test_critical_spine_counts_as_degraded,
        test_throttled_cabinets_do_not_count_toward_sla,
        test_price_war_cuts_contract_revenue,
        test_unanswered_poach_removes_staff,
        test_compliance_contracts_need_certification,
        test_auto_resolve_marks_resolved,
        test_new_incident_not_ticked_on_spawn_tick,
        test_unattended_incident_escalates,
        test_leaf_failure_restored_on_resolve,
        test_catastrophic_triggers,
        test_sampling_never_picks_triggered_types,
        test_incident_effects_and_costs,
        test_drill_cooldown_and_no_incident,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
