from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fabricsim import catalog
from fabricsim.commands import apply_command
from fabricsim.engine import EngineConfig, new_game, run_ticks
from fabricsim.grid import grid_size
from fabricsim.models import (
    ComplianceCert,
    CustomerType,
    EnergySource,
    Environment,
    Facing,
    GameState,
    InsuranceType,
    StaffRole,
)
from fabricsim.reporting import (
    format_money,
    print_compliance,
    print_contracts,
    print_finance,
    print_incidents,
    print_status,
)
from fabricsim.storage import append_ledger_csv, list_slots, load_game


def _input_int(prompt: str, default: Optional[int] = None) -> Optional[int]:
    s = input(prompt).strip()
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        print("Invalid input: enter an integer.")
        return None


def _input_choice(prompt: str, options: Dict[str, Any], default: Any) -> Any:
    keys = list(options)
    print("  " + "  ".join(f"{i}) {k}" for i, k in enumerate(keys, start=1)))
    idx = _input_int(prompt, None)
    if idx is None or not 1 <= idx <= len(keys):
        return default
    return options[keys[idx - 1]]


def _run(state: GameState, cmd_type: str, **args: Any) -> GameState:
    after = apply_command(state, {"type": cmd_type, **args})
    if after is state:
        print(f"Rejected: {cmd_type}")
    return after


def _cmd_build(state: GameState) -> GameState:
    print("\n1) Place cabinet  2) Add server  3) Add leaf switch  4) Add spine switch")
    print("5) Remove cabinet  6) Toggle cabinet power  7) Toggle spine power  8) Refresh servers")
    print("9) Upgrade suite  10) Upgrade cooling  11) Install aisle containment")
    sub = input("Choose: ").strip()
    if sub == "1":
        col = _input_int("Column: ")
        row = _input_int("Row: ")
        if col is None or row is None:
            return state
        env = _input_choice("Environment: ", {e.value: e for e in Environment}, Environment.PRODUCTION)
        cust = _input_choice("Customer type: ", {c.value: c for c in CustomerType}, CustomerType.GENERAL)
        facing = _input_choice("Facing: ", {f.value: f for f in Facing}, Facing.NORTH)
        return _run(state, "add_cabinet", col=col, row=row, environment=env.value, customer_type=cust.value, facing=facing.value)
    if sub == "2":
        return _run(state, "upgrade_next_cabinet")
    if sub == "3":
        return _run(state, "add_leaf_to_next_cabinet")
    if sub == "4":
        return _run(state, "add_spine_switch")
    if sub in ("5", "6", "8"):
        cid = input("Cabinet ID: ").strip()
        kind = {"5": "remove_cabinet", "6": "toggle_cabinet_power", "8": "refresh_servers"}[sub]
        return _run(state, kind, cabinet_id=cid)
    if sub == "7":
        return _run(state, "toggle_spine_power", spine_id=input("Spine ID: ").strip())
    if sub == "9":
        return _run(state, "upgrade_suite")
    if sub == "10":
        return _run(state, "upgrade_cooling")
    if sub == "11":
        print(f"aisles 0-{max(0, grid_size(state)[1] - 2)}, contained: {state.aisle_containments or 'none'}")
        aisle = _input_int("Aisle: ")
        return state if aisle is None else _run(state, "install_aisle_containment", aisle=aisle)
    print("Invalid option.")
    return state


def _cmd_contracts(state: GameState) -> GameState:
    print_contracts(state)
    print("\n1) Accept offer  2) Cancel contract  3) Bid on RFP")
    sub = input("Choose: ").strip()
    if sub == "1":
        idx = _input_int("Offer index: ")
        return state if idx is None else _run(state, "accept_contract", offer_index=idx)
    if sub == "2":
        return _run(state, "cancel_contract", contract_id=input("Contract ID: ").strip())
    if sub == "3":
        return _run(state, "bid_on_rfp", rfp_id=input("RFP ID: ").strip())
    return state


def _cmd_incidents(state: GameState) -> GameState:
    print_incidents(state)
    print("\n1) Resolve incident  2) Run drill")
    sub = input("Choose: ").strip()
    if sub == "1":
        return _run(state, "resolve_incident", incident_id=input("Incident ID: ").strip())
    if sub == "2":
        after = _run(state, "run_drill")
        if after is not state:
            print("Drill passed." if after.last_drill_passed else "Drill failed.")
        return after
    return state


def _cmd_finance(state: GameState) -> GameState:
    print_finance(state)
    print("\n1) Take loan  2) Repay loan  3) Buy insurance  4) Cancel insurance")
    print("5) Buy generator  6) Upgrade power redundancy  7) Energy source")
    sub = input("Choose: ").strip()
    if sub == "1":
        for i, o in enumerate(catalog.LOAN_OPTIONS):
            print(f"  [{i}] {o.label}: {format_money(o.principal)} over {o.term_ticks} ticks")
        idx = _input_int("Option: ")
        return state if idx is None else _run(state, "take_loan", option_index=idx)
    if sub == "2":
        return _run(state, "repay_loan", loan_id=input("Loan ID: ").strip())
    if sub in ("3", "4"):
        policy = _input_choice("Policy: ", {p.value: p for p in InsuranceType}, None)
        if policy is None:
            return state
        return _run(state, "buy_insurance" if sub == "3" else "cancel_insurance", policy=policy.value)
    if sub == "5":
        for i, g in enumerate(catalog.GENERATOR_OPTIONS):
            print(f"  [{i}] {g.label}: {format_money(g.cost)}, {g.capacity_w / 1000.0:.0f} kW")
        idx = _input_int("Option: ")
        return state if idx is None else _run(state, "buy_generator", option_index=idx)
    if sub == "6":
        return _run(state, "upgrade_power_redundancy")
    if sub == "7":
        src = _input_choice("Source: ", {e.value: e for e in EnergySource}, None)
        return state if src is None else _run(state, "set_energy_source", source=src.value)
    return state


def _cmd_research(state: GameState) -> GameState:
    print("\n=== Technology ===")
    for tech in catalog.TECH_TREE.values():
        mark = "x" if tech.tech_id in state.unlocked_tech else " "
        pat = " (patented)" if tech.tech_id in state.patents else ""
        print(f"  [{mark}] {tech.tech_id:<22}{tech.label}, {format_money(tech.cost)}{pat}")
    if state.active_research is not None:
        print(f"  researching {state.active_research.tech_id}: {state.active_research.ticks_remaining} ticks left")
    print(f"ops tier {state.ops_tier.value}, security tier {state.security_tier.value}")
    print_compliance(state)
    print("\n1) Start research  2) Patent  3) Upgrade ops tier  4) Upgrade security tier  5) Hire staff  6) Prestige")
    print("7) Start compliance audit")
    sub = input("Choose: ").strip()
    if sub == "1":
        return _run(state, "start_research", tech_id=input("Tech ID: ").strip())
    if sub == "2":
        return _run(state, "patent_tech", tech_id=input("Tech ID: ").strip())
    if sub == "3":
        return _run(state, "upgrade_ops_tier")
    if sub == "4":
        return _run(state, "upgrade_security_tier")
    if sub == "5":
        role = _input_choice("Role: ", {r.value: r for r in StaffRole}, None)
        return state if role is None else _run(state, "hire_staff", role=role.value)
    if sub == "6":
        return _run(state, "do_prestige")
    if sub == "7":
        cert = _input_choice("Certification: ", {c.value: c for c in ComplianceCert}, None)
        return state if cert is None else _run(state, "start_compliance_audit", cert=cert.value)
    return state


def _cmd_save_load(state: GameState) -> GameState:
    for info in list_slots():
        if info.get("exists"):
            print(f"  slot {info['slot']}: tick {info.get('tick')}, money {format_money(info.get('money', 0.0))}")
        else:
            print(f"  slot {info['slot']}: empty")
    sub = input("1) Save  2) Load: ").strip()
    slot = _input_int("Slot (1-3): ")
    if slot is None:
        return state
    if sub == "1":
        return _run(state, "save_game", slot=slot)
    if sub == "2":
        return _run(state, "load_game", slot=slot)
    return state


def _autoload_or_new() -> GameState:
    try:
        return load_game(1)
    except FileNotFoundError:
        return new_game()
    except ValueError as e:
        print(f"Could not read slot 1: {e}. Starting a new game.")
        return new_game()


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("FABRICSIM_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = EngineConfig()
    state = _autoload_or_new()

    print("Data center fabric simulator (CLI)\n")

    while True:
        print_status(state)
        print("1) Advance ticks")
        print("2) Build")
        print("3) Contracts")
        print("4) Incidents")
        print("5) Finance")
        print("6) Research / staff / prestige")
        print("7) Save / load")
        print("8) New game")
        print("0) Quit")

        try:
            choice = input("Choose: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye.")
            return 0

        if choice == "1":
            n = _input_int("Ticks [1]: ", 1)
            if n is None:
                continue
            for _ in range(max(0, n)):
                state = run_ticks(state, 1, cfg)
                try:
                    append_ledger_csv(state)
                except OSError as e:
                    print(f"Ledger export failed: {e}")
                    break
                if state.bankrupt:
                    print("The company is bankrupt.")
                    break
        elif choice == "2":
            state = _cmd_build(state)
        elif choice == "3":
            state = _cmd_contracts(state)
        elif choice == "4":
            state = _cmd_incidents(state)
        elif choice == "5":
            state = _cmd_finance(state)
        elif choice == "6":
            state = _cmd_research(state)
        elif choice == "7":
            state = _cmd_save_load(state)
        elif choice == "8":
            state = _run(state, "new_game")
        elif choice == "0":
            print("Bye.")
            return 0
        else:
            print("Invalid option: enter 0-8.")
