from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from fabricsim import catalog
from fabricsim.errors import CommandRejected, RejectKind, require, require_funds
from fabricsim.models import Cabinet, CoolingType, CustomerType, Environment, Facing, GameState, SpineSwitch, Zone
from fabricsim.weather import ambient_temp


def grid_size(state: GameState) -> Tuple[int, int]:
    cfg = catalog.suite_config(state.suite_tier)
    return int(cfg.cols), int(cfg.rows)


def in_bounds(state: GameState, col: int, row: int) -> bool:
    cols, rows = grid_size(state)
    return 0 <= int(col) < cols and 0 <= int(row) < rows


def occupancy(cabinets: Iterable[Cabinet]) -> Dict[Tuple[int, int], Cabinet]:
    return {(int(c.col), int(c.row)): c for c in cabinets}


def is_occupied(state: GameState, col: int, row: int) -> bool:
    for cab in state.cabinets:
        if int(cab.col) == int(col) and int(cab.row) == int(row):
            return True
    return False


def placement_problem(state: GameState, col: int, row: int) -> Optional[str]:
    """Return why a cabinet cannot be placed at (col,row), or None when the tile is usable.

    Funds are checked by the caller; this only covers the spatial rules.
    """

    if not in_bounds(state, col, row):
        cols, rows = grid_size(state)
        return f"tile ({col},{row}) outside {cols}x{rows} grid"
    if is_occupied(state, col, row):
        return f"tile ({col},{row}) is occupied"
    cfg = catalog.suite_config(state.suite_tier)
    if len(state.cabinets) >= cfg.max_cabinets:
        return f"suite allows at most {cfg.max_cabinets} cabinets"
    return None


def next_cabinet_for_server(state: GameState) -> Optional[Cabinet]:
    for cab in state.cabinets:
        if int(cab.server_count) < catalog.MAX_SERVERS_PER_CABINET:
            return cab
    return None


def next_cabinet_for_leaf(state: GameState) -> Optional[Cabinet]:
    for cab in state.cabinets:
        if not cab.has_leaf_switch:
            return cab
    return None


_ORTHOGONAL = ((1, 0), (-1, 0), (0, 1), (0, -1))


def neighbors(cab: Cabinet, occ: Dict[Tuple[int, int], Cabinet]) -> List[Cabinet]:
    out: List[Cabinet] = []
    for dc, dr in _ORTHOGONAL:
        other = occ.get((int(cab.col) + dc, int(cab.row) + dr))
        if other is not None:
            out.append(other)
    return out


def side_neighbors(cab: Cabinet, occ: Dict[Tuple[int, int], Cabinet]) -> List[Cabinet]:
    out: List[Cabinet] = []
    for dc in (-1, 1):
        other = occ.get((int(cab.col) + dc, int(cab.row)))
        if other is not None:
            out.append(other)
    return out


def front_back_tiles(cab: Cabinet) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Return (front_tile, rear_tile). North-facing cabinets draw air from the row above."""

    if cab.facing == Facing.NORTH:
        return (int(cab.col), int(cab.row) - 1), (int(cab.col), int(cab.row) + 1)
    return (int(cab.col), int(cab.row) + 1), (int(cab.col), int(cab.row) - 1)


def aisle_counts(cab: Cabinet, occ: Dict[Tuple[int, int], Cabinet]) -> Tuple[int, int]:
    """Return (opposing, same_facing) counts among the front/rear neighbours."""

    opposing = same = 0
    for tile in front_back_tiles(cab):
        other = occ.get(tile)
        if other is None:
            continue
        if other.facing == cab.facing:
            same += 1
        else:
            opposing += 1
    return opposing, same


def spacing_heat(cab: Cabinet, occ: Dict[Tuple[int, int], Cabinet]) -> float:
    adjacent = len(side_neighbors(cab, occ)) + sum(aisle_counts(cab, occ))
    heat = catalog.SPACING_PER_NEIGHBOR * float(len(side_neighbors(cab, occ)))
    if adjacent >= 3:
        heat += catalog.SPACING_CROWDED
    front, rear = front_back_tiles(cab)
    if front not in occ:
        heat -= catalog.SPACING_FRONT_OPEN
    if rear not in occ:
        heat -= catalog.SPACING_REAR_OPEN
    return heat


def _flood(start: Cabinet, occ: Dict[Tuple[int, int], Cabinet], same, seen: Set[str]) -> List[Cabinet]:
    stack = [start]
    cluster: List[Cabinet] = []
    seen.add(start.id)
    while stack:
        cur = stack.pop()
        cluster.append(cur)
        for nb in neighbors(cur, occ):
            if nb.id in seen or not same(cur, nb):
                continue
            seen.add(nb.id)
            stack.append(nb)
    return cluster


def compute_zones(cabinets: List[Cabinet], min_size: int = catalog.ZONE_MIN_SIZE) -> List[Zone]:
    occ = occupancy(cabinets)
    zones: List[Zone] = []

    seen: Set[str] = set()
    for cab in cabinets:
        if cab.id in seen:
            continue
        cluster = _flood(cab, occ, lambda a, b: a.environment == b.environment, seen)
        if len(cluster) >= min_size:
            zones.append(Zone(kind="environment", key=cab.environment.value, cabinet_ids=sorted(c.id for c in cluster)))

    seen = set()
    for cab in cabinets:
        if cab.id in seen:
            continue
        cluster = _flood(cab, occ, lambda a, b: a.customer_type == b.customer_type, seen)
        if len(cluster) >= min_size:
            zones.append(Zone(kind="customer", key=cab.customer_type.value, cabinet_ids=sorted(c.id for c in cluster)))

    return zones


def is_zone_requirement_met(zones: List[Zone], kind: Optional[str], key: Optional[str], min_size: int) -> bool:
    if not kind:
        return True
    for z in zones:
        if z.kind == kind and z.key == key and len(z.cabinet_ids) >= int(min_size):
            return True
    return False


def zone_membership(zones: List[Zone]) -> Dict[str, List[Zone]]:
    out: Dict[str, List[Zone]] = {}
    for z in zones:
        for cid in z.cabinet_ids:
            out.setdefault(cid, []).append(z)
    return out


def mixed_env_penalized(cabinets: List[Cabinet]) -> Set[str]:
    """Cabinets whose every neighbour runs a different environment class."""

    occ = occupancy(cabinets)
    out: Set[str] = set()
    for cab in cabinets:
        nbs = neighbors(cab, occ)
        if nbs and all(nb.environment != cab.environment for nb in nbs):
            out.add(cab.id)
    return out


def zone_heat_factor(cab: Cabinet, member_of: List[Zone], mixed: bool) -> float:
    f = 1.0
    for z in member_of:
        if z.kind != "environment":
            continue
        if z.key == Environment.LAB.value:
            f *= 1.0 - catalog.LAB_ZONE_HEAT_REDUCTION
        elif z.key == Environment.MANAGEMENT.value:
            f *= 1.0 - catalog.MANAGEMENT_ZONE_HEAT_REDUCTION
    if mixed:
        f *= 1.0 + catalog.MIXED_ENV_HEAT_PENALTY
    return f


def zone_revenue_bonus(cab: Cabinet, member_of: List[Zone]) -> float:
    """Additive revenue bonus from zones; customer zones only pay production cabinets."""

    bonus = 0.0
    for z in member_of:
        if z.kind == "environment" and z.key == Environment.PRODUCTION.value:
            bonus += catalog.PRODUCTION_ZONE_REVENUE_BONUS
        elif z.kind == "customer" and cab.environment == Environment.PRODUCTION:
            bonus += catalog.CUSTOMER_TYPES[cab.customer_type].zone_revenue_bonus
    return bonus


# Build operations. Each mutates ``state`` in place or raises CommandRejected.


def add_cabinet(
    state: GameState,
    col: int,
    row: int,
    environment: Environment = Environment.PRODUCTION,
    customer_type: CustomerType = CustomerType.GENERAL,
    facing: Facing = Facing.NORTH,
) -> Cabinet:
    problem = placement_problem(state, col, row)
    if problem is not None:
        kind = RejectKind.CAP if "at most" in problem else RejectKind.VALIDATION
        raise CommandRejected(kind, problem)
    require_funds(state.money, catalog.CABINET_COST, "a cabinet")
    state.money -= catalog.CABINET_COST
    cab = Cabinet(
        id=state.new_id("cab"),
        col=int(col),
        row=int(row),
        environment=Environment(environment),
        customer_type=CustomerType(customer_type),
        facing=Facing(facing),
        heat_level=ambient_temp(state),
    )
    state.cabinets.append(cab)
    state.log("build", f"cabinet {cab.id} placed at ({cab.col},{cab.row})")
    return cab


def remove_cabinet(state: GameState, cabinet_id: str) -> Cabinet:
    cab = state.cabinet_by_id(cabinet_id)
    if cab is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no cabinet {cabinet_id}")
    state.cabinets = [c for c in state.cabinets if c.id != cabinet_id]
    state.log("build", f"cabinet {cab.id} removed")
    return cab


def toggle_cabinet_power(state: GameState, cabinet_id: str) -> Cabinet:
    cab = state.cabinet_by_id(cabinet_id)
    if cab is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no cabinet {cabinet_id}")
    cab.power_status = not cab.power_status
    return cab


def toggle_spine_power(state: GameState, spine_id: str) -> SpineSwitch:
    sp = state.spine_by_id(spine_id)
    if sp is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no spine switch {spine_id}")
    sp.power_status = not sp.power_status
    return sp


def upgrade_next_cabinet(state: GameState) -> Cabinet:
    cab = next_cabinet_for_server(state)
    require(cab is not None, RejectKind.CAP, "every cabinet is full")
    require_funds(state.money, catalog.SERVER_COST, "a server")
    state.money -= catalog.SERVER_COST
    cab.server_count += 1
    return cab


def add_leaf_to_next_cabinet(state: GameState) -> Cabinet:
    cab = next_cabinet_for_leaf(state)
    require(cab is not None, RejectKind.CAP, "every cabinet already has a leaf switch")
    require_funds(state.money, catalog.LEAF_COST, "a leaf switch")
    state.money -= catalog.LEAF_COST
    cab.has_leaf_switch = True
    return cab


def add_spine_switch(state: GameState) -> SpineSwitch:
    cap = catalog.suite_config(state.suite_tier).max_spines
    require(len(state.spine_switches) < cap, RejectKind.CAP, f"suite allows at most {cap} spine switches")
    require_funds(state.money, catalog.SPINE_COST, "a spine switch")
    state.money -= catalog.SPINE_COST
    sp = SpineSwitch(id=state.new_id("spine"))
    state.spine_switches.append(sp)
    state.log("build", f"spine switch {sp.id} installed")
    return sp


def upgrade_suite(state: GameState) -> None:
    nxt = catalog.next_in_order(catalog.SUITE_ORDER, state.suite_tier)
    require(nxt is not None, RejectKind.CAP, "already in the largest suite")
    cost = catalog.SUITE_TIERS[nxt].upgrade_cost
    require_funds(state.money, cost, f"the {nxt.value} suite")
    state.money -= cost
    state.suite_tier = nxt
    state.log("build", f"moved into the {nxt.value} suite")


def upgrade_cooling(state: GameState) -> None:
    require(state.cooling_type != CoolingType.WATER, RejectKind.CAP, "already on water cooling")
    cost = catalog.COOLING[CoolingType.WATER].upgrade_cost
    require_funds(state.money, cost, "water cooling")
    state.money -= cost
    state.cooling_type = CoolingType.WATER
    state.log("build", "switched to water cooling")


def aisle_count(state: GameState) -> int:
    _, rows = grid_size(state)
    return max(0, rows - 1)


def install_aisle_containment(state: GameState, aisle: int) -> int:
    order = catalog.SUITE_ORDER
    require(
        order.index(state.suite_tier) >= order.index(catalog.AISLE_CONTAINMENT_MIN_SUITE),
        RejectKind.VALIDATION,
        f"aisle containment needs the {catalog.AISLE_CONTAINMENT_MIN_SUITE.value} suite",
    )
    a = int(aisle)
    require(0 <= a < aisle_count(state), RejectKind.VALIDATION, f"no aisle {a} in this suite")
    require(a not in state.aisle_containments, RejectKind.VALIDATION, f"aisle {a} is already contained")
    require_funds(state.money, catalog.AISLE_CONTAINMENT_COST, "aisle containment")
    state.money -= catalog.AISLE_CONTAINMENT_COST
    state.aisle_containments = sorted(state.aisle_containments + [a])
    state.log("build", f"containment installed on aisle {a}")
    return a


def containment_bonus(state: GameState) -> float:
    """Cooling overhead cut from contained aisles that have cabinets on both sides."""

    rows = {int(c.row) for c in state.cabinets}
    paying = sum(1 for a in state.aisle_containments if int(a) in rows and int(a) + 1 in rows)
    return min(catalog.AISLE_CONTAINMENT_MAX_BONUS, catalog.AISLE_CONTAINMENT_BONUS * paying)


def refresh_servers(state: GameState, cabinet_id: str) -> float:
    cab = state.cabinet_by_id(cabinet_id)
    if cab is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no cabinet {cabinet_id}")
    require(int(cab.server_count) > 0, RejectKind.VALIDATION, f"cabinet {cabinet_id} has no servers")
    cost = catalog.REFRESH_COST_PER_SERVER * int(cab.server_count)
    require_funds(state.money, cost, "a hardware refresh")
    state.money -= cost
    cab.server_age = 0
    state.counters.hardware_refreshes += 1
    state.log("build", f"refreshed {cab.server_count} servers in {cab.id}")
    return cost
