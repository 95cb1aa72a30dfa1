from __future__ import annotations

from fabricsim import catalog
from fabricsim.commands import apply_command
from fabricsim.compliance import audit_problems, has_certification, tick_compliance
from fabricsim.engine import EngineConfig, new_game, run_ticks
from fabricsim.finance import loan_payment, service_loans, stock_price
from fabricsim.models import (
    Cabinet,
    ComplianceCert,
    FinanceBreakdown,
    GameState,
    OpsTier,
    PoachAttempt,
    SecurityTier,
    StaffMember,
    StaffRole,
    SuiteTier,
)
from fabricsim.progression import bonuses_for_level, can_prestige, prestige_problems


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


_QUIET = EngineConfig(incidents_enabled=False, competitors_enabled=False)


def test_loan_payment_formula() -> None:
    _assert(loan_payment(10_000.0, 0.0, 200) == 50.0, "expected straight-line payment at zero interest")
    p = loan_payment(10_000.0, 0.001, 200)
    _assert(50.0 < p < 60.0, f"expected a small interest premium, got {p}")
    _assert(p * 200 > 10_000.0, "expected total repayment above principal")


def test_take_and_repay_loan() -> None:
    s = new_game(seed=1)
    _assert(apply_command(s, {"type": "take_loan", "option_index": 7}) is s, "expected unknown option rejected")
    s1 = apply_command(s, {"type": "take_loan", "option_index": 0})
    _assert(s1.money == s.money + 10_000.0 and len(s1.loans) == 1, "expected principal paid out")
    _assert("first_loan" in s1.achievements, "expected first_loan achievement")

    s2 = apply_command(s1, {"type": "take_loan", "option_index": 0})
    s3 = apply_command(s2, {"type": "take_loan", "option_index": 0})
    _assert(apply_command(s3, {"type": "take_loan", "option_index": 0}) is s3, "expected a 4th loan rejected")

    loan = s1.loans[0]
    repaid = apply_command(s1, {"type": "repay_loan", "loan_id": loan.id})
    _assert(repaid.loans == [] and repaid.money == s1.money - loan.remaining, "expected early repayment")
    _assert("debt_free" in repaid.achievements, "expected debt_free achievement")


def test_loan_service_pays_down() -> None:
    s = apply_command(new_game(seed=1), {"type": "take_loan", "option_index": 0})
    loan = s.loans[0]
    term_before = loan.ticks_remaining
    balance_before = loan.remaining
    fin = FinanceBreakdown()
    service_loans(s, fin)
    _assert(abs(fin.loan_payments - loan.payment_per_tick) < 1e-9, "expected one scheduled payment")
    _assert(s.loans[0].remaining < balance_before, "expected the balance to fall")
    _assert(s.loans[0].ticks_remaining == term_before - 1, "expected the term to shorten")


def test_research_unlocks_after_duration() -> None:
    s = new_game(seed=1)
    _assert(apply_command(s, {"type": "start_research", "tech_id": "variable_fans"}) is s, "expected prerequisite enforced")
    _assert(apply_command(s, {"type": "start_research", "tech_id": "warp_drive"}) is s, "expected unknown tech rejected")
    r = apply_command(s, {"type": "start_research", "tech_id": "hot_aisle"})
    _assert(r.money == s.money - 10_000.0, "expected research cost charged")
    _assert(apply_command(r, {"type": "start_research", "tech_id": "ups_upgrade"}) is r, "expected one project at a time")

    ticks = catalog.TECH_TREE["hot_aisle"].research_ticks
    almost = run_ticks(r, ticks - 1, _QUIET)
    _assert("hot_aisle" not in almost.unlocked_tech, "expected research still running")
    done = run_ticks(almost, 1, _QUIET)
    _assert("hot_aisle" in done.unlocked_tech and done.active_research is None, "expected hot_aisle unlocked")
    _assert(done.last_tick.research_completed == "hot_aisle", "expected completion in the tick result")

    pat = apply_command(done, {"type": "patent_tech", "tech_id": "hot_aisle"})
    _assert(pat.patents == ["hot_aisle"] and pat.money == done.money - catalog.PATENT_COST, "expected patent filed")
    _assert(apply_command(pat, {"type": "patent_tech", "tech_id": "hot_aisle"}) is pat, "expected duplicate patent rejected")
    later = run_ticks(pat, 1, _QUIET)
    _assert(later.finance.patent_income == catalog.PATENT_INCOME_PER_TICK, "expected patent royalties")
    _assert(later.power.cooling_rate > r.power.cooling_rate, "expected hot aisle to raise the cooling rate")


def test_ops_tier_requirements() -> None:
    s = new_game(seed=1)
    s.money = 1_000_000.0
    _assert(apply_command(s, {"type": "upgrade_ops_tier"}) is s, "expected monitoring gated on staff and tech")
    s.unlocked_tech.append("ups_upgrade")
    s.reputation_score = 30.0
    for _ in range(2):
        s = apply_command(s, {"type": "hire_staff", "role": "electrician"})
    up = apply_command(s, {"type": "upgrade_ops_tier"})
    _assert(up.ops_tier == OpsTier.MONITORING, "expected monitoring unlocked")
    _assert("script_kiddie" in up.achievements, "expected script_kiddie achievement")


def test_staff_cap_and_counter_poach() -> None:
    s = new_game(seed=1)
    s = apply_command(s, {"type": "hire_staff", "role": "network_engineer"})
    s = apply_command(s, {"type": "hire_staff", "role": "cooling_specialist"})
    _assert(len(s.staff) == catalog.suite_config(SuiteTier.STARTER).max_staff, "expected two hires")
    _assert(apply_command(s, {"type": "hire_staff", "role": "electrician"}) is s, "expected staff cap")
    fired = apply_command(s, {"type": "fire_staff", "staff_id": s.staff[0].id})
    _assert(len(fired.staff) == 1, "expected one staff member left")

    target = s.staff[0]
    s.poach_attempts.append(
        PoachAttempt(id="poach-x", staff_id=target.id, competitor_id="comp-1", competitor_name="Rival", ticks_remaining=5)
    )
    kept = apply_command(s, {"type": "counter_poach", "attempt_id": "poach-x"})
    _assert(kept.poach_attempts == [], "expected the attempt withdrawn")
    _assert(kept.staff[0].salary_per_tick == round(target.salary_per_tick * 1.2, 4), "expected a 20% raise")
    _assert(kept.money == s.money - catalog.STAFF_ROLES[target.role].hire_cost, "expected the counter-offer cost")


def test_compliance_audit_grants_and_lapses() -> None:
    s = new_game(seed=1)
    _assert(apply_command(s, {"type": "start_compliance_audit", "cert": "hipaa"}) is s, "expected basic security refused")
    _assert(apply_command(s, {"type": "start_compliance_audit", "cert": "iso9001"}) is s, "expected an unknown cert refused")

    s.security_tier = SecurityTier.HIGH_SECURITY
    s.reputation_score = 60.0
    _assert(audit_problems(s, ComplianceCert.HIPAA) == ["needs 1 security officers"], "expected only the officer missing")
    s.staff.append(StaffMember(id="st1", name="A B", role=StaffRole.SECURITY_OFFICER, salary_per_tick=5.0))
    started = apply_command(s, {"type": "start_compliance_audit", "cert": "hipaa"})
    _assert(started.money == s.money - 20_000.0, "expected the audit fee charged")
    _assert(started.active_audit is not None and started.active_audit.ticks_remaining == 12, "expected a 12-tick audit")
    _assert(apply_command(started, {"type": "start_compliance_audit", "cert": "pci_dss"}) is started, "expected one audit at a time")

    almost = run_ticks(started, 11, _QUIET)
    _assert(not has_certification(almost, ComplianceCert.HIPAA), "expected the audit still running")
    done = run_ticks(almost, 1, _QUIET)
    _assert(has_certification(done, ComplianceCert.HIPAA) and done.active_audit is None, "expected HIPAA granted")
    cert = done.certifications[0]
    _assert(cert.expires_tick == done.tick + 250, f"expected a 250-tick validity, got {cert.expires_tick - done.tick}")
    _assert(apply_command(done, {"type": "start_compliance_audit", "cert": "hipaa"}) is done, "expected renewal refused early")

    done.tick = cert.expires_tick - 5
    done.reputation_score = 60.0
    renewed = apply_command(done, {"type": "start_compliance_audit", "cert": "hipaa"})
    _assert(renewed is not done, "expected renewal allowed close to expiry")

    done.tick = cert.expires_tick
    tick_compliance(done)
    _assert(done.certifications == [] and not has_certification(done, ComplianceCert.HIPAA), "expected the cert lapsed")


def test_insurance_generator_energy() -> None:
    s = new_game(seed=1)
    ins = apply_command(s, {"type": "buy_insurance", "policy": "fire_insurance"})
    _assert(ins.insurance_policies and ins.money == s.money, "expected a policy with no upfront cost")
    _assert(apply_command(ins, {"type": "buy_insurance", "policy": "fire_insurance"}) is ins, "expected duplicate rejected")
    gen = apply_command(ins, {"type": "buy_generator", "option_index": 0})
    _assert(len(gen.generators) == 1 and gen.money == ins.money - 15_000.0, "expected a small diesel")
    green = apply_command(gen, {"type": "set_energy_source", "source": "grid_green"})
    _assert(green.energy_source.value == "grid_green" and "green_power" in green.achievements, "expected green power")
    cancelled = apply_command(green, {"type": "cancel_insurance", "policy": "fire_insurance"})
    _assert(cancelled.insurance_policies == [], "expected the policy cancelled")


def test_stock_price_floor_and_history() -> None:
    s = new_game(seed=1)
    s.money = -100_000.0
    _assert(stock_price(s) == 1.0, "expected the price floor")
    run = run_ticks(new_game(seed=1), 70, _QUIET)
    _assert(len(run.stock_history) == _QUIET.stock_history_len, "expected a bounded stock history")
    _assert(run.stock.low <= run.stock.price <= run.stock.high, "expected price within low/high")


def _eligible() -> GameState:
    s = new_game(seed=40)
    s.suite_tier = SuiteTier.ENTERPRISE
    s.money = 600_000.0
    s.reputation_score = 80.0
    s.cabinets = [Cabinet(id=f"c{i}", col=i % 14, row=i // 14) for i in range(30)]
    return s


def test_prestige() -> None:
    fresh = new_game(seed=40)
    _assert(not can_prestige(fresh) and prestige_problems(fresh), "expected a new company ineligible")
    _assert(apply_command(fresh, {"type": "do_prestige"}) is fresh, "expected prestige rejected")

    s = _eligible()
    _assert(can_prestige(s), f"expected eligible, blockers: {prestige_problems(s)}")
    nxt = apply_command(s, {"type": "do_prestige"})
    _assert(nxt.prestige.level == 1 and nxt.prestige.total_runs_completed == 1, "expected level 1")
    _assert(nxt.cabinets == [] and nxt.tick == 0, "expected a fresh facility")
    _assert(nxt.money == 60_000.0, f"expected 50000 + 10000 starting bonus, got {nxt.money}")
    _assert(nxt.reputation_score == 23.0, f"expected 20 + 3 starting reputation, got {nxt.reputation_score}")
    _assert(nxt.rng_seed == 41, "expected the next run to use the next seed")
    _assert(bonuses_for_level(2).revenue_multiplier == 0.1, "expected 5% revenue per level")


def main() -> None:
    tests = [
        test_loan_payment_formula,
        test_take_and_repay_loan,
        test_loan_service_pays_down,
        test_research_unlocks_after_duration,
        test_ops_tier_requirements,
        test_staff_cap_and_counter_poach,
        test_compliance_audit_grants_and_lapses,
        test_insurance_generator_energy,
        test_stock_price_floor_and_history,
        test_prestige,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
