from __future__ import annotations

from dataclasses import asdict
from typing import List

from fabricsim import catalog
from fabricsim.grid import grid_size, occupancy
from fabricsim.models import Environment, GameState
from fabricsim.weather import ambient_temp


def format_money(x: float) -> str:
    return f"{x:,.2f}"


def format_clock(tick: int, minutes_per_tick: int = catalog.MINUTES_PER_TICK) -> str:
    minutes = int(tick) * int(minutes_per_tick)
    day = minutes // (24 * 60) + 1
    hh = (minutes // 60) % 24
    mm = minutes % 60
    return f"Day {day} {hh:02d}:{mm:02d}"


def summary_lines(state: GameState) -> List[str]:
    p = state.power
    t = state.traffic_stats
    lines = [
        f"{format_clock(state.tick)}  tick {state.tick}  money {format_money(state.money)}",
        f"reputation {state.reputation_score:.1f} ({catalog.reputation_tier(state.reputation_score).tier})  "
        f"market share {state.player_market_share:.1f}%  stock {state.stock.price:.2f}",
        f"power {p.total_power_w / 1000.0:.1f} kW  PUE {p.pue:.2f}  heat avg {p.avg_heat:.0f} / max {p.max_heat:.1f} C",
        f"traffic {t.total_bandwidth_gbps:.1f}/{t.total_demand_gbps:.1f} Gbps  redirected {t.redirected_flows}/{t.total_flows}",
        f"{state.season.value}, {catalog.WEATHER[state.weather_condition].label.lower()}  outside {ambient_temp(state):.1f} C",
    ]
    if state.bankrupt:
        lines.append("BANKRUPT")
    return lines


_ENV_CHAR = {Environment.PRODUCTION: "P", Environment.LAB: "L", Environment.MANAGEMENT: "M"}


def render_grid(state: GameState) -> str:
    """ASCII floor plan: env letter, lowercase when powered off, '!' when throttled."""

    cols, rows = grid_size(state)
    occ = occupancy(state.cabinets)
    out: List[str] = []
    for r in range(rows):
        cells = []
        for c in range(cols):
            cab = occ.get((c, r))
            if cab is None:
                cells.append(" . ")
                continue
            ch = _ENV_CHAR[cab.environment]
            if not cab.is_active:
                ch = ch.lower()
            mark = "!" if cab.heat_level >= catalog.THROTTLE_TEMP else str(cab.server_count)
            cells.append(f"{ch}{mark} ")
        out.append("".join(cells).rstrip())
    return "\n".join(out)


def print_status(state: GameState) -> None:
    print()
    for line in summary_lines(state):
        print(line)
    print(render_grid(state))
    spines = ", ".join(f"{s.id}{'' if s.is_active else ' (down)'}" for s in state.spine_switches) or "none"
    print(f"spines: {spines}")


def print_finance(state: GameState) -> None:
    fin = asdict(state.finance)
    print(f"\n=== Finance (tick {state.tick}) ===")
    for k, v in fin.items():
        if v:
            print(f"  {k:<24}{format_money(float(v)):>14}")
    for loan in state.loans:
        print(f"  loan {loan.id}: {loan.label} remaining {format_money(loan.remaining)} ({loan.ticks_remaining} ticks)")


def print_contracts(state: GameState) -> None:
    print("\n=== Contract offers ===")
    for i, o in enumerate(state.contract_offers):
        cert = f", needs {o.required_cert.value}" if o.required_cert is not None else ""
        print(f"  [{i}] {o.company} ({o.tier.value}) {o.revenue_per_tick:.0f}/tick, >= {o.min_servers} servers, < {o.max_temp:.0f} C{cert}")
    print("=== Active contracts ===")
    for ac in state.active_contracts:
        flag = "ok" if ac.compliant else f"VIOLATING x{ac.consecutive_violations}"
        print(f"  {ac.id} {ac.terms.company}: {ac.ticks_remaining} ticks left, {flag}")
    for rfp in state.rfp_offers:
        print(f"  RFP {rfp.id}: {rfp.terms.company} win {rfp.win_chance:.0%}, {rfp.ticks_remaining} ticks, {len(rfp.bids)} rivals")


def print_incidents(state: GameState) -> None:
    print("\n=== Incidents ===")
    open_ones = [i for i in state.active_incidents if not i.resolved]
    if not open_ones:
        print("  none")
    for inc in open_ones:
        print(f"  {inc.id} {inc.label} [{inc.severity.value}] {inc.ticks_remaining} ticks, resolve {format_money(inc.resolve_cost)}")


def print_compliance(state: GameState) -> None:
    print("\n=== Compliance ===")
    for c in state.certifications:
        print(f"  {catalog.COMPLIANCE_CERTS[c.cert].label}: valid until tick {c.expires_tick}")
    if state.active_audit is not None:
        label = catalog.COMPLIANCE_CERTS[state.active_audit.cert].label
        print(f"  auditing {label}: {state.active_audit.ticks_remaining} ticks left")
    if not state.certifications and state.active_audit is None:
        print("  no certifications")
