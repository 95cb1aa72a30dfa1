from __future__ import annotations

from fabricsim import catalog
from fabricsim.commands import apply_command
from fabricsim.engine import new_game, refresh_derived
from fabricsim.grid import compute_zones, containment_bonus, mixed_env_penalized
from fabricsim.models import Cabinet, CustomerType, Environment, Facing, GameState, SuiteTier
from fabricsim.power import overhead_reduction
from fabricsim.reporting import format_clock, format_money, render_grid, summary_lines


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _small_fabric(seed: int = 20260101) -> GameState:
    s = new_game(seed=seed)
    for cmd in (
        {"type": "add_cabinet", "col": 0, "row": 0},
        {"type": "add_cabinet", "col": 1, "row": 0},
        {"type": "upgrade_next_cabinet"},
        {"type": "upgrade_next_cabinet"},
        {"type": "add_leaf_to_next_cabinet"},
        {"type": "add_spine_switch"},
    ):
        nxt = apply_command(s, cmd)
        _assert(nxt is not s, f"expected {cmd['type']} accepted")
        s = nxt
    return s


def test_add_cabinet_costs_2000() -> None:
    s = new_game(seed=1)
    _assert(s.money == 50_000.0, f"expected starting money 50000, got {s.money}")
    after = apply_command(s, {"type": "add_cabinet", "col": 0, "row": 0, "environment": "production"})
    _assert(after.money == 48_000.0, f"expected money=48000, got {after.money}")
    _assert(len(after.cabinets) == 1, "expected one cabinet")
    _assert(s.money == 50_000.0 and not s.cabinets, "input snapshot must not change")


def test_add_cabinet_out_of_bounds_rejected() -> None:
    s = new_game(seed=1)
    for col, row in ((5, 0), (0, 5), (-1, 0)):
        after = apply_command(s, {"type": "add_cabinet", "col": col, "row": row})
        _assert(after is s, f"expected ({col},{row}) rejected on the 5x5 starter grid")
    _assert(len(s.cabinets) == 0, "expected no cabinets")


def test_add_cabinet_occupied_tile_rejected() -> None:
    s = apply_command(new_game(seed=1), {"type": "add_cabinet", "col": 2, "row": 2})
    again = apply_command(s, {"type": "add_cabinet", "col": 2, "row": 2})
    _assert(again is s, "expected second placement on the same tile rejected")
    _assert(len(again.cabinets) == 1, "expected cabinet count unchanged")


def test_add_cabinet_insufficient_funds() -> None:
    s = new_game(seed=1)
    s.money = 100.0
    after = apply_command(s, {"type": "add_cabinet", "col": 0, "row": 0})
    _assert(after is s, "expected rejection with money=100")
    _assert(after.money == 100.0 and not after.cabinets, "expected nothing spent or placed")


def test_suite_cabinet_cap() -> None:
    s = new_game(seed=1)
    s.money = 1_000_000.0
    cap = catalog.suite_config(SuiteTier.STARTER).max_cabinets
    placed = 0
    for row in range(5):
        for col in range(5):
            nxt = apply_command(s, {"type": "add_cabinet", "col": col, "row": row})
            if nxt is not s:
                placed += 1
            s = nxt
    _assert(placed == cap, f"expected {cap} cabinets placed, got {placed}")


def test_servers_fill_in_order_and_cap() -> None:
    s = new_game(seed=1)
    s.money = 1_000_000.0
    s = apply_command(s, {"type": "add_cabinet", "col": 0, "row": 0})
    for _ in range(catalog.MAX_SERVERS_PER_CABINET):
        s = apply_command(s, {"type": "upgrade_next_cabinet"})
    full = apply_command(s, {"type": "upgrade_next_cabinet"})
    _assert(full is s, "expected rejection when every cabinet is full")
    _assert(s.cabinets[0].server_count == catalog.MAX_SERVERS_PER_CABINET, "expected a full cabinet")


def test_spine_cap_per_suite() -> None:
    s = new_game(seed=1)
    s.money = 1_000_000.0
    for _ in range(catalog.suite_config(SuiteTier.STARTER).max_spines):
        s = apply_command(s, {"type": "add_spine_switch"})
    extra = apply_command(s, {"type": "add_spine_switch"})
    _assert(extra is s, "expected spine cap enforced")
    _assert("max_spines" in s.achievements, "expected max_spines achievement")


def test_only_spine_off_redirects_everything() -> None:
    s = _small_fabric()
    _assert(s.traffic_stats.total_flows > 0, "expected flows with a leaf and a spine")
    _assert(s.traffic_stats.redirected_flows == 0, "expected no redirection with the spine up")

    spine_id = s.spine_switches[0].id
    off = apply_command(s, {"type": "toggle_spine_power", "spine_id": spine_id})
    ts = off.traffic_stats
    _assert(ts.total_flows > 0, "expected flows kept while the fabric is down")
    _assert(ts.redirected_flows == ts.total_flows, f"expected all flows redirected, got {ts.redirected_flows}/{ts.total_flows}")
    _assert(ts.spine_utilization == {}, f"expected empty spine utilization, got {ts.spine_utilization}")


def test_second_spine_carries_redirected_load() -> None:
    s = _small_fabric()
    s = apply_command(s, {"type": "add_spine_switch"})
    off = apply_command(s, {"type": "toggle_spine_power", "spine_id": s.spine_switches[0].id})
    ts = off.traffic_stats
    _assert(ts.redirected_flows == ts.total_flows > 0, "expected flows rerouted through the surviving spine")
    _assert(list(ts.spine_utilization) == [s.spine_switches[1].id], "expected utilization only for the active spine")
    _assert(ts.served_fraction == 1.0, f"expected the surviving spine to carry the load, got {ts.served_fraction}")


def test_zones_need_three_adjacent() -> None:
    cabs = [
        Cabinet(id="a", col=0, row=0, environment=Environment.LAB),
        Cabinet(id="b", col=1, row=0, environment=Environment.LAB),
        Cabinet(id="c", col=3, row=0, environment=Environment.LAB),
    ]
    _assert(not [z for z in compute_zones(cabs) if z.kind == "environment"], "expected no zone for a broken row")
    cabs.append(Cabinet(id="d", col=2, row=0, environment=Environment.LAB))
    env_zones = [z for z in compute_zones(cabs) if z.kind == "environment"]
    _assert(len(env_zones) == 1 and env_zones[0].cabinet_ids == ["a", "b", "c", "d"], f"unexpected zones {env_zones}")
    cust = [z for z in compute_zones(cabs) if z.kind == "customer"]
    _assert(cust and cust[0].key == CustomerType.GENERAL.value, "expected a general customer zone")


def test_mixed_environment_penalty() -> None:
    cabs = [
        Cabinet(id="p", col=1, row=0, environment=Environment.PRODUCTION),
        Cabinet(id="l1", col=0, row=0, environment=Environment.LAB),
        Cabinet(id="l2", col=2, row=0, environment=Environment.LAB),
    ]
    _assert(mixed_env_penalized(cabs) == {"p", "l1", "l2"}, "expected every isolated cabinet penalized")


def test_remove_and_toggle_cabinet() -> None:
    s = _small_fabric()
    cid = s.cabinets[0].id
    off = apply_command(s, {"type": "toggle_cabinet_power", "cabinet_id": cid})
    _assert(off.cabinet_by_id(cid).power_status is False, "expected cabinet powered off")
    _assert(off.power.it_power_w < s.power.it_power_w, "expected lower IT draw with a cabinet off")
    gone = apply_command(off, {"type": "remove_cabinet", "cabinet_id": cid})
    _assert(gone.cabinet_by_id(cid) is None, "expected cabinet removed")
    _assert(apply_command(gone, {"type": "remove_cabinet", "cabinet_id": cid}) is gone, "expected unknown id rejected")


def test_refresh_servers_resets_age() -> None:
    s = _small_fabric()
    s.cabinets[0].server_age = 500
    refresh_derived(s)
    after = apply_command(s, {"type": "refresh_servers", "cabinet_id": s.cabinets[0].id})
    _assert(after.cabinets[0].server_age == 0, "expected server age reset")
    _assert(after.money == s.money - catalog.REFRESH_COST_PER_SERVER * 2, "expected 1500 per server")
    _assert("hardware_refresh" in after.achievements, "expected hardware_refresh achievement")


def test_upgrade_suite_and_cooling() -> None:
    s = new_game(seed=1)
    s.money = 30_000.0
    _assert(apply_command(s, {"type": "upgrade_suite"}) is s, "expected suite upgrade unaffordable")
    s.money = 100_000.0
    up = apply_command(s, {"type": "upgrade_suite"})
    _assert(up.suite_tier == SuiteTier.STANDARD, "expected standard suite")
    _assert(up.money == 60_000.0, f"expected 40000 charged, got {up.money}")
    wc = apply_command(up, {"type": "upgrade_cooling"})
    _assert(wc.cooling_type.value == "water" and "water_cooling" in wc.achievements, "expected water cooling")
    _assert(apply_command(wc, {"type": "upgrade_cooling"}) is wc, "expected second cooling upgrade rejected")


def test_unknown_and_malformed_commands_rejected() -> None:
    s = new_game(seed=1)
    _assert(apply_command(s, {"type": "launch_rocket"}) is s, "expected unknown type rejected")
    _assert(apply_command(s, {"type": "add_cabinet", "col": "x", "row": 0}) is s, "expected non-integer column rejected")
    _assert(apply_command(s, {"type": "add_cabinet", "row": 0}) is s, "expected missing column rejected")
    _assert(apply_command(s, {"type": "add_cabinet", "col": 0, "row": 0, "environment": "moon"}) is s, "expected bad enum rejected")
    _assert(apply_command(s, {"type": "add_cabinet", "col": float("inf"), "row": 0}) is s, "expected an infinite column rejected")
    _assert(apply_command(s, {"type": "add_cabinet", "args": [1, 2]}) is s, "expected list args rejected")
    _assert(apply_command(s, {"type": "buy_insurance", "policy": ["fire_insurance"]}) is s, "expected an unhashable enum value rejected")


def test_aisle_containment_install_rules() -> None:
    s = new_game(seed=1)
    s.money = 20_000.0
    _assert(apply_command(s, {"type": "install_aisle_containment", "aisle": 0}) is s, "expected the starter suite refused")

    s.suite_tier = SuiteTier.STANDARD
    done = apply_command(s, {"type": "install_aisle_containment", "aisle": 2})
    _assert(done.aisle_containments == [2], f"expected aisle 2 contained, got {done.aisle_containments}")
    _assert(done.money == 5_000.0, f"expected 15000 charged, got {done.money}")
    _assert(apply_command(done, {"type": "install_aisle_containment", "aisle": 2}) is done, "expected a duplicate refused")
    done.money = 100_000.0
    _assert(apply_command(done, {"type": "install_aisle_containment", "aisle": 6}) is done, "expected aisle past the last row refused")
    s.money = 100.0
    _assert(apply_command(s, {"type": "install_aisle_containment", "aisle": 1}) is s, "expected insufficient funds refused")
    _assert(new_game(seed=1).aisle_containments == [], "expected a new game to start uncontained")


def test_aisle_containment_cuts_cooling_overhead() -> None:
    s = new_game(seed=1)
    s.suite_tier = SuiteTier.STANDARD
    s.aisle_containments = [2]
    s.cabinets = [Cabinet(id="a", col=0, row=2, server_count=4)]
    _assert(containment_bonus(s) == 0.0, "expected no bonus with one side of the aisle empty")
    s.cabinets.append(Cabinet(id="b", col=0, row=3, server_count=4, facing=Facing.SOUTH))
    _assert(abs(containment_bonus(s) - catalog.AISLE_CONTAINMENT_BONUS) < 1e-9, "expected 6% for one paying aisle")
    _assert(abs(overhead_reduction(s) - catalog.AISLE_CONTAINMENT_BONUS) < 1e-9, "expected the bonus in the overhead cut")

    s.cabinets = [Cabinet(id=f"c{r}", col=0, row=r, server_count=1) for r in range(7)]
    s.aisle_containments = list(range(6))
    _assert(containment_bonus(s) == catalog.AISLE_CONTAINMENT_MAX_BONUS, "expected the bonus capped at 20%")


def test_reporting_views() -> None:
    s = _small_fabric()
    _assert(format_clock(0) == "Day 1 00:00", "expected midnight on day 1")
    _assert(format_clock(100) == "Day 2 01:00", f"expected day 2 01:00, got {format_clock(100)}")
    rows = render_grid(s).splitlines()
    _assert(len(rows) == 5, "expected one line per grid row")
    _assert(rows[0].startswith("P") and rows[1].strip(" .") == "", f"unexpected floor plan {rows!r}")
    off = apply_command(s, {"type": "toggle_cabinet_power", "cabinet_id": s.cabinets[0].id})
    _assert(render_grid(off).startswith("p"), "expected lowercase for a powered-off cabinet")
    lines = summary_lines(s)
    _assert(lines[0].startswith("Day 1 00:00") and "money" in lines[0], "expected clock and money line")
    _assert(format_money(1234.5) == "1,234.50", "expected thousands separators")


def main() -> None:
    tests = [
        test_add_cabinet_costs_2000,
        test_add_cabinet_out_of_bounds_rejected,
        test_add_cabinet_occupied_tile_rejected,
        test_add_cabinet_insufficient_funds,
        test_suite_cabinet_cap,
        test_servers_fill_in_order_and_cap,
        test_spine_cap_per_suite,
        test_only_spine_off_redirects_everything,
        test_second_spine_carries_redirected_load,
        test_zones_need_three_adjacent,
        test_mixed_environment_penalty,
        test_remove_and_toggle_cabinet,
        test_refresh_servers_resets_age,
        test_upgrade_suite_and_cooling,
        test_unknown_and_malformed_commands_rejected,
        test_aisle_containment_install_rules,
        test_aisle_containment_cuts_cooling_overhead,
        test_reporting_views,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
