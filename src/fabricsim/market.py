from __future__ import annotations

import logging
import random
from typing import List

from fabricsim import catalog
from fabricsim.errors import CommandRejected, RejectKind, require, require_funds
from fabricsim.models import (
    Competitor,
    CompetitorBid,
    CustomerType,
    GameState,
    Personality,
    PoachAttempt,
    StaffMember,
    StaffRole,
)

logger = logging.getLogger(__name__)

TOTAL_SHARE = 100.0
STREAK_SHARE_PRESSURE = 0.001
MAX_STREAK_PRESSURE = 0.3


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(x)))


def player_strength(state: GameState) -> float:
    servers = sum(int(c.server_count) for c in state.cabinets if c.is_active)
    s = float(state.reputation_score) * 0.5 + min(30.0, servers * 0.5) + 5.0 * len(state.active_contracts)
    return _clamp(s, 1.0, catalog.MAX_STRENGTH)


def competitor_share_total(state: GameState) -> float:
    return sum(float(c.market_share) for c in state.competitors)


def normalize_shares(state: GameState) -> None:
    """Scale competitor shares into [0, 100] and give the player the remainder."""

    for c in state.competitors:
        c.market_share = max(0.0, float(c.market_share))
    total = competitor_share_total(state)
    if total > TOTAL_SHARE:
        for c in state.competitors:
            c.market_share = float(c.market_share) * TOTAL_SHARE / total
    state.player_market_share = TOTAL_SHARE - competitor_share_total(state)


def _new_competitor(state: GameState, rng: random.Random) -> Competitor:
    used = {c.name for c in state.competitors}
    names = [n for n in catalog.COMPETITOR_NAMES if n not in used] or list(catalog.COMPETITOR_NAMES)
    personality = rng.choice(list(Personality))
    bid_mod = catalog.PERSONALITIES[personality].bid_modifier
    return Competitor(
        id=state.new_id("comp"),
        name=rng.choice(names),
        personality=personality,
        strength=round(rng.uniform(8.0, 15.0), 3),
        specialization=rng.choice(list(CustomerType)),
        reputation_score=round(rng.uniform(25.0, 45.0), 2),
        aggression=round(_clamp(0.5 - bid_mod + rng.uniform(-0.1, 0.1), 0.1, 0.95), 3),
        market_share=catalog.COMPETITOR_ENTRY_SHARE,
    )


def arrive_competitors(state: GameState, rng: random.Random) -> List[Competitor]:
    due = sum(1 for t in catalog.COMPETITOR_ARRIVAL_TICKS if int(state.tick) >= t)
    arrived: List[Competitor] = []
    while len(state.competitors) < due:
        comp = _new_competitor(state, rng)
        state.competitors.append(comp)
        arrived.append(comp)
        state.log("market", f"{comp.name} ({comp.personality.value}) entered the market")
        logger.info("competitor %s arrived at tick %s", comp.name, state.tick)
    if arrived:
        normalize_shares(state)
    return arrived


def grow_competitors(state: GameState) -> None:
    ps = player_strength(state)
    for c in state.competitors:
        growth = catalog.STRENGTH_GROWTH_RATE * catalog.PERSONALITIES[c.personality].growth_rate
        # Trailing rivals catch up, leaders slow down.
        if float(c.strength) < ps:
            growth += catalog.RUBBER_BAND_STRENGTH
        else:
            growth -= catalog.RUBBER_BAND_STRENGTH
        c.strength = round(_clamp(float(c.strength) + growth, 1.0, catalog.MAX_STRENGTH), 4)
        c.reputation_score = round(_clamp(float(c.reputation_score) + (float(c.strength) - float(c.reputation_score)) * 0.01, 0.0, 100.0), 3)
        c.tech_level = int(float(c.strength) // 20)


def drift_shares(state: GameState) -> None:
    if not state.competitors:
        state.player_market_share = TOTAL_SHARE
        return
    ps = player_strength(state)
    total = ps + sum(float(c.strength) for c in state.competitors)
    pressure = min(MAX_STREAK_PRESSURE, STREAK_SHARE_PRESSURE * int(state.counters.outperform_streak))
    for c in state.competitors:
        target = TOTAL_SHARE * float(c.strength) / total * (1.0 - pressure)
        c.market_share = float(c.market_share) + catalog.SHARE_DRIFT_RATE * (target - float(c.market_share))
    normalize_shares(state)

    leader = max(float(c.market_share) for c in state.competitors)
    if float(state.player_market_share) > leader:
        state.counters.outperform_streak += 1
    else:
        state.counters.outperform_streak = 0


def step_price_war(state: GameState, rng: random.Random) -> None:
    if int(state.price_war_ticks) > 0:
        state.price_war_ticks -= 1
        if state.price_war_ticks == 0:
            state.log("market", "the price war is over")
        return
    if state.competitors and rng.random() < catalog.PRICE_WAR_CHANCE:
        state.price_war_ticks = catalog.PRICE_WAR_TICKS
        state.log("market", "a price war broke out: contract revenue down 15%")
        logger.info("price war started at tick %s", state.tick)


def step_competitor_outages(state: GameState, rng: random.Random) -> None:
    hit = False
    for c in state.competitors:
        if rng.random() < catalog.COMPETITOR_OUTAGE_CHANCE:
            c.market_share = max(0.0, float(c.market_share) - catalog.COMPETITOR_OUTAGE_SHARE_LOSS)
            hit = True
            state.log("market", f"{c.name} suffered an outage")
    if hit:
        normalize_shares(state)


def step_bids(state: GameState, rng: random.Random) -> None:
    kept: List[CompetitorBid] = []
    for bid in state.competitor_bids:
        bid.ticks_remaining -= 1
        if bid.ticks_remaining > 0:
            kept.append(bid)
            continue
        # Window closed before the player accepted: the rival signs the tenant.
        state.contract_offers = [o for o in state.contract_offers if o.contract_type != bid.contract_type]
        for c in state.competitors:
            if c.id == bid.competitor_id:
                c.contract_wins += 1
        state.log("market", f"{bid.competitor_name} signed the {bid.contract_type} tenant")
    state.competitor_bids = kept

    contested = {b.contract_type for b in state.competitor_bids}
    for c in state.competitors:
        open_offers = [o for o in state.contract_offers if o.contract_type not in contested]
        if not open_offers:
            break
        if rng.random() >= catalog.COMPETITOR_BID_CHANCE * float(c.aggression):
            continue
        offer = rng.choice(open_offers)
        mod = catalog.PERSONALITIES[c.personality].bid_modifier
        state.competitor_bids.append(
            CompetitorBid(
                competitor_id=c.id,
                competitor_name=c.name,
                contract_type=offer.contract_type,
                win_chance=round(_clamp(0.2 + float(c.strength) / 200.0 - mod * 0.5, 0.05, 0.95), 3),
                ticks_remaining=catalog.COMPETITOR_BID_WINDOW,
            )
        )
        contested.add(offer.contract_type)
        state.log("market", f"{c.name} is bidding on {offer.company}")


def step_poaching(state: GameState, rng: random.Random) -> None:
    kept: List[PoachAttempt] = []
    for attempt in state.poach_attempts:
        attempt.ticks_remaining -= 1
        if attempt.ticks_remaining > 0:
            kept.append(attempt)
            continue
        member = next((s for s in state.staff if s.id == attempt.staff_id), None)
        if member is not None:
            state.staff = [s for s in state.staff if s.id != member.id]
            state.counters.staff_poached += 1
            state.log("staff", f"{member.name} left for {attempt.competitor_name}")
            logger.info("staff %s poached by %s", member.id, attempt.competitor_name)
    state.poach_attempts = kept

    targeted = {a.staff_id for a in state.poach_attempts}
    for c in state.competitors:
        free = [s for s in state.staff if s.id not in targeted]
        if not free:
            break
        if rng.random() >= catalog.POACH_ATTEMPT_CHANCE:
            continue
        member = rng.choice(free)
        state.poach_attempts.append(
            PoachAttempt(
                id=state.new_id("poach"),
                staff_id=member.id,
                competitor_id=c.id,
                competitor_name=c.name,
                ticks_remaining=catalog.POACH_WINDOW_TICKS,
            )
        )
        targeted.add(member.id)
        state.log("staff", f"{c.name} is trying to poach {member.name}")


def step_market(state: GameState, rng: random.Random, enabled: bool = True) -> None:
    if not enabled:
        return
    arrive_competitors(state, rng)
    grow_competitors(state)
    drift_shares(state)
    step_price_war(state, rng)
    step_competitor_outages(state, rng)
    step_bids(state, rng)
    step_poaching(state, rng)


# Staff


def _staff_name(n: int) -> str:
    first = catalog.FIRST_NAMES[n % len(catalog.FIRST_NAMES)]
    last = catalog.LAST_NAMES[(n // len(catalog.FIRST_NAMES)) % len(catalog.LAST_NAMES)]
    return f"{first} {last}"


def hire_staff(state: GameState, role: StaffRole) -> StaffMember:
    r = StaffRole(role)
    cap = catalog.suite_config(state.suite_tier).max_staff
    require(len(state.staff) < cap, RejectKind.CAP, f"staff capped at {cap} for this suite")
    cfg = catalog.STAFF_ROLES[r]
    require_funds(state.money, cfg.hire_cost, f"hiring a {cfg.label}")
    state.money -= cfg.hire_cost
    member = StaffMember(
        id=state.new_id("staff"),
        name=_staff_name(int(state.next_id)),
        role=r,
        salary_per_tick=float(cfg.salary_per_tick),
        hired_tick=int(state.tick),
    )
    state.staff.append(member)
    state.counters.staff_hired += 1
    state.log("staff", f"hired {member.name} ({cfg.label})")
    return member


def fire_staff(state: GameState, staff_id: str) -> StaffMember:
    member = next((s for s in state.staff if s.id == staff_id), None)
    if member is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no staff member {staff_id}")
    state.staff = [s for s in state.staff if s.id != staff_id]
    state.poach_attempts = [a for a in state.poach_attempts if a.staff_id != staff_id]
    state.log("staff", f"let {member.name} go")
    return member


def counter_poach(state: GameState, attempt_id: str) -> StaffMember:
    attempt = next((a for a in state.poach_attempts if a.id == attempt_id), None)
    if attempt is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no poaching attempt {attempt_id}")
    member = next((s for s in state.staff if s.id == attempt.staff_id), None)
    require(member is not None, RejectKind.VALIDATION, "that staff member already left")
    cost = catalog.STAFF_ROLES[member.role].hire_cost
    require_funds(state.money, cost, "a counter-offer")
    state.money -= cost
    member.salary_per_tick = round(float(member.salary_per_tick) * (1.0 + catalog.COUNTER_OFFER_RAISE), 4)
    state.poach_attempts = [a for a in state.poach_attempts if a.id != attempt_id]
    state.log("staff", f"{member.name} stays after a counter-offer")
    return member
