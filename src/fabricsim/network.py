from __future__ import annotations

import math
from typing import Dict, List, Tuple

from fabricsim import catalog
from fabricsim.models import Cabinet, GameState, NetworkFlow, NetworkTopology, StaffRole, TrafficStats


def hour_of_day(tick: int, minutes_per_tick: int = catalog.MINUTES_PER_TICK) -> float:
    return ((int(tick) * int(minutes_per_tick)) / 60.0) % 24.0


def demand_for_hour(hour: float) -> float:
    """24-hour demand cycle: trough at 02:00, peak at 14:00."""

    return round(1.0 + 0.3 * math.sin(2.0 * math.pi * (float(hour) - 8.0) / 24.0), 4)


def link_capacity_gbps(state: GameState, traffic_drop: float = 1.0) -> float:
    base = catalog.OPTICAL_LINK_CAPACITY_GBPS if "optical_interconnect" in state.unlocked_tech else catalog.LINK_CAPACITY_GBPS
    engineers = sum(1 for s in state.staff if s.role == StaffRole.NETWORK_ENGINEER)
    return base * (1.0 + catalog.NETWORK_ENGINEER_CAPACITY_BONUS * engineers) * max(0.0, float(traffic_drop))


def leaf_demand_gbps(cab: Cabinet, demand_multiplier: float) -> float:
    cust = catalog.CUSTOMER_TYPES[cab.customer_type]
    return float(cab.server_count) * catalog.GBPS_PER_SERVER * float(demand_multiplier) * cust.bandwidth_multiplier


def utilization_class(util: float) -> str:
    if util > catalog.UTIL_CRITICAL:
        return "critical"
    if util > catalog.UTIL_ELEVATED:
        return "elevated"
    return "normal"


def compute_traffic(state: GameState, demand_multiplier: float, traffic_drop: float = 1.0) -> Tuple[TrafficStats, NetworkTopology]:
    """Route every powered leaf's demand across the powered spines.

    Each leaf splits its demand evenly over the active spines; a spine that is
    off or failed contributes nothing and its share lands on the others.
    With no active spine every flow is kept, marked redirected, with zero
    allocated capacity.
    """

    spines = list(state.spine_switches)
    active = [s for s in spines if s.is_active]
    leaves = [c for c in state.cabinets if c.leaf_active]

    if not leaves:
        return TrafficStats(), NetworkTopology(redundancy_level=max(0, len(active) - 1))

    flows: List[NetworkFlow] = []
    total_demand = 0.0

    if not active:
        for cab in leaves:
            demand = leaf_demand_gbps(cab, demand_multiplier)
            total_demand += demand
            targets = spines or [None]
            for sp in targets:
                flows.append(
                    NetworkFlow(
                        leaf_cabinet_id=cab.id,
                        spine_id=sp.id if sp is not None else "",
                        demand_gbps=round(demand / len(targets), 2),
                        redirected=True,
                    )
                )
        stats = TrafficStats(
            total_flows=len(flows),
            redirected_flows=len(flows),
            total_demand_gbps=round(total_demand, 2),
            served_fraction=0.0 if total_demand > 0 else 1.0,
            flows=flows,
        )
        topo = NetworkTopology(total_links=len(flows), healthy_links=0, redundancy_level=0)
        return stats, topo

    cap = link_capacity_gbps(state, traffic_drop)
    redirecting = len(active) < len(spines)
    load: Dict[str, float] = {s.id: 0.0 for s in active}
    capacity: Dict[str, float] = {s.id: 0.0 for s in active}
    total_bw = 0.0
    total_cap = 0.0
    redirected = 0

    for cab in leaves:
        demand = leaf_demand_gbps(cab, demand_multiplier)
        total_demand += demand
        per_spine = demand / len(active)
        for sp in active:
            bw = min(per_spine, cap)
            util = bw / cap if cap > 0 else 0.0
            flows.append(
                NetworkFlow(
                    leaf_cabinet_id=cab.id,
                    spine_id=sp.id,
                    demand_gbps=round(per_spine, 2),
                    allocated_gbps=round(bw, 2),
                    capacity_gbps=round(cap, 2),
                    utilization=round(util, 3),
                    redirected=redirecting,
                )
            )
            load[sp.id] += bw
            capacity[sp.id] += cap
            total_bw += bw
            total_cap += cap
            if redirecting:
                redirected += 1

    spine_util: Dict[str, float] = {}
    spine_status: Dict[str, str] = {}
    for sp in active:
        c = capacity[sp.id]
        u = round(load[sp.id] / c, 3) if c > 0 else 0.0
        spine_util[sp.id] = u
        spine_status[sp.id] = utilization_class(u)

    served = (total_bw / total_demand) if total_demand > 0 else 1.0
    stats = TrafficStats(
        total_flows=len(flows),
        redirected_flows=redirected,
        total_demand_gbps=round(total_demand, 2),
        total_bandwidth_gbps=round(total_bw, 2),
        total_capacity_gbps=round(total_cap, 2),
        served_fraction=round(min(1.0, served), 4),
        flows=flows,
        spine_utilization=spine_util,
        spine_status=spine_status,
    )

    healthy = sum(1 for f in flows if not f.redirected and f.utilization <= catalog.UTIL_CRITICAL)
    topo = NetworkTopology(
        total_links=len(flows),
        healthy_links=healthy,
        oversubscription_ratio=round(total_demand / total_cap, 3) if total_cap > 0 else 0.0,
        avg_utilization=round(sum(spine_util.values()) / len(spine_util), 3) if spine_util else 0.0,
        redundancy_level=max(0, len(active) - 1),
    )
    return stats, topo


def served_by_cabinet(stats: TrafficStats) -> Dict[str, float]:
    demand: Dict[str, float] = {}
    alloc: Dict[str, float] = {}
    for f in stats.flows:
        demand[f.leaf_cabinet_id] = demand.get(f.leaf_cabinet_id, 0.0) + float(f.demand_gbps)
        alloc[f.leaf_cabinet_id] = alloc.get(f.leaf_cabinet_id, 0.0) + float(f.allocated_gbps)
    out: Dict[str, float] = {}
    for cid, d in demand.items():
        out[cid] = 1.0 if d <= 0 else min(1.0, alloc.get(cid, 0.0) / d)
    return out


def network_revenue_factor(served: float) -> float:
    return catalog.NETWORK_REVENUE_FLOOR + (1.0 - catalog.NETWORK_REVENUE_FLOOR) * max(0.0, min(1.0, float(served)))


def fabric_down(stats: TrafficStats) -> bool:
    return stats.total_flows > 0 and stats.redirected_flows == stats.total_flows and stats.total_capacity_gbps <= 0


def fabric_degraded(stats: TrafficStats) -> bool:
    """Fabric state fed to the SLA engine: outage, any critical spine, or under-served demand."""

    if fabric_down(stats):
        return True
    if any(status == "critical" for status in stats.spine_status.values()):
        return True
    return stats.total_demand_gbps > 0 and stats.served_fraction < catalog.DEGRADED_SERVED_FRACTION
