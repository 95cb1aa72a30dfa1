from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional

from fabricsim import catalog
from fabricsim.compliance import has_certification, held_certifications
from fabricsim.errors import CommandRejected, RejectKind, require
from fabricsim.grid import is_zone_requirement_met
from fabricsim.models import (
    ActiveContract,
    CompetitorBid,
    ComplianceCert,
    ContractTerms,
    ContractTier,
    Environment,
    FinanceBreakdown,
    GameState,
    RFPOffer,
    TickResult,
    Zone,
)
from fabricsim.weather import ambient_temp

logger = logging.getLogger(__name__)


def terms_from_def(d: catalog.ContractDef, revenue_multiplier: float = 1.0) -> ContractTerms:
    return ContractTerms(
        contract_type=d.contract_type,
        company=d.company,
        tier=d.tier,
        revenue_per_tick=round(float(d.revenue_per_tick) * max(0.0, float(revenue_multiplier)), 2),
        min_servers=int(d.min_servers),
        max_temp=float(d.max_temp),
        duration=int(d.duration),
        penalty_per_tick=float(d.penalty_per_tick),
        termination_ticks=int(d.termination_ticks),
        completion_bonus=float(d.completion_bonus),
        zone_kind=d.zone_kind,
        zone_key=d.zone_key,
        zone_min_size=int(d.zone_min_size),
        required_cert=d.required_cert,
    )


def offer_pool(reputation: float, certs: Iterable[ComplianceCert] = ()) -> List[catalog.ContractDef]:
    held = set(certs)
    pool: List[catalog.ContractDef] = []
    for d in catalog.contract_defs():
        if d.required_cert is not None and d.required_cert not in held:
            continue
        if d.tier == ContractTier.SILVER and reputation < catalog.SILVER_MIN_REPUTATION:
            continue
        if d.tier == ContractTier.GOLD and reputation < catalog.GOLD_MIN_REPUTATION:
            continue
        pool.append(d)
    return pool


def generate_offers(state: GameState, rng: random.Random, count: int = catalog.CONTRACT_OFFER_COUNT) -> List[ContractTerms]:
    pool = offer_pool(float(state.reputation_score), held_certifications(state))
    bonus = catalog.reputation_tier(state.reputation_score).contract_bonus
    picks = rng.sample(pool, k=min(int(count), len(pool)))
    return [terms_from_def(d, 1.0 + bonus) for d in picks]


def production_servers(state: GameState) -> int:
    """Servers that count toward an SLA: powered production cabinets below the throttle point."""

    return sum(
        int(c.server_count)
        for c in state.cabinets
        if c.is_active and c.environment == Environment.PRODUCTION and float(c.heat_level) < catalog.THROTTLE_TEMP
    )


def hottest_production_temp(state: GameState) -> float:
    temps = [
        float(c.heat_level)
        for c in state.cabinets
        if c.is_active and c.environment == Environment.PRODUCTION and int(c.server_count) > 0
    ]
    return max(temps) if temps else ambient_temp(state)


def is_compliant(state: GameState, terms: ContractTerms, zones: List[Zone], network_degraded: bool) -> bool:
    if production_servers(state) < int(terms.min_servers):
        return False
    if hottest_production_temp(state) >= float(terms.max_temp):
        return False
    if not is_zone_requirement_met(zones, terms.zone_kind, terms.zone_key, terms.zone_min_size):
        return False
    if terms.required_cert is not None and not has_certification(state, terms.required_cert):
        return False
    return not network_degraded


def is_eligible(state: GameState, terms: ContractTerms, zones: List[Zone]) -> bool:
    """Display-only check; acceptance is gated by the active-contract cap alone."""

    return is_compliant(state, terms, zones, network_degraded=False)


def contract_revenue_multiplier(state: GameState) -> float:
    m = 1.0 + float(state.prestige.bonuses.revenue_multiplier)
    if int(state.price_war_ticks) > 0:
        m *= 1.0 - catalog.PRICE_WAR_REVENUE_CUT
    return m


def evaluate_contracts(
    state: GameState,
    zones: List[Zone],
    network_degraded: bool,
    fin: FinanceBreakdown,
    result: TickResult,
) -> None:
    """Run one SLA evaluation for every active contract.

    Termination is checked before completion, so a contract whose violation
    streak reaches its limit on its final tick is terminated without bonus.
    """

    rev_mult = contract_revenue_multiplier(state)
    kept: List[ActiveContract] = []
    for ac in state.active_contracts:
        terms = ac.terms
        ok = is_compliant(state, terms, zones, network_degraded)
        ac.compliant = ok
        if ok:
            ac.consecutive_violations = 0
            earned = float(terms.revenue_per_tick) * rev_mult
            ac.total_earned += earned
            fin.contract_revenue += earned
        else:
            ac.consecutive_violations += 1
            ac.total_penalties += float(terms.penalty_per_tick)
            fin.sla_penalties += float(terms.penalty_per_tick)

        if ac.consecutive_violations >= int(terms.termination_ticks):
            state.counters.contracts_terminated += 1
            state.adjust_reputation(-5.0)
            result.contracts_terminated.append(ac.id)
            state.log("contract", f"{terms.company} terminated after {ac.consecutive_violations} violating ticks")
            logger.info("contract %s (%s) terminated", ac.id, terms.contract_type)
            continue

        ac.ticks_remaining -= 1
        if ac.ticks_remaining <= 0:
            fin.contract_revenue += float(terms.completion_bonus)
            ac.total_earned += float(terms.completion_bonus)
            state.counters.contracts_completed += 1
            if terms.tier == ContractTier.ZONE:
                state.counters.zone_contracts_completed += 1
            state.adjust_reputation(5.0 if terms.tier == ContractTier.GOLD else 3.0)
            result.contracts_completed.append(ac.id)
            state.log("contract", f"{terms.company} completed, bonus {terms.completion_bonus:,.0f}")
            logger.info("contract %s (%s) completed", ac.id, terms.contract_type)
            continue

        kept.append(ac)
    state.active_contracts = kept


def refresh_offers(state: GameState, rng: random.Random, interval: int) -> None:
    if int(interval) <= 0 or int(state.tick) % int(interval) != 0:
        return
    state.contract_offers = generate_offers(state, rng)
    # Bids on the old offers lapse with them.
    state.competitor_bids = []
    logger.debug("tick %s: %s new contract offers", state.tick, len(state.contract_offers))


def _activate(state: GameState, terms: ContractTerms, source: str) -> ActiveContract:
    ac = ActiveContract(
        id=state.new_id("ctr"),
        terms=terms,
        ticks_remaining=int(terms.duration),
        accepted_tick=int(state.tick),
        source=source,
    )
    state.active_contracts.append(ac)
    state.counters.contracts_accepted += 1
    if terms.tier == ContractTier.GOLD:
        state.counters.gold_contracts_accepted += 1
    return ac


def accept_offer(state: GameState, offer_index: int) -> ActiveContract:
    idx = int(offer_index)
    require(0 <= idx < len(state.contract_offers), RejectKind.VALIDATION, f"no contract offer #{idx}")
    require(
        len(state.active_contracts) < catalog.MAX_ACTIVE_CONTRACTS,
        RejectKind.CAP,
        f"at most {catalog.MAX_ACTIVE_CONTRACTS} active contracts",
    )
    terms = state.contract_offers.pop(idx)
    contested = [b for b in state.competitor_bids if b.contract_type == terms.contract_type]
    if contested:
        state.counters.contracts_beaten_competitors += 1
        state.competitor_bids = [b for b in state.competitor_bids if b.contract_type != terms.contract_type]
    ac = _activate(state, terms, "offer")
    state.log("contract", f"accepted {terms.company} ({terms.tier.value})")
    logger.info("contract %s accepted: %s", ac.id, terms.contract_type)
    return ac


def cancel_contract(state: GameState, contract_id: str) -> float:
    for i, ac in enumerate(state.active_contracts):
        if ac.id != contract_id:
            continue
        fee = float(ac.terms.penalty_per_tick) * int(ac.terms.termination_ticks) * catalog.CANCEL_FEE_TICKS_MULTIPLIER
        state.active_contracts.pop(i)
        state.money -= fee
        state.adjust_reputation(-2.0)
        state.log("contract", f"cancelled {ac.terms.company}, fee {fee:,.0f}")
        return fee
    raise CommandRejected(RejectKind.VALIDATION, f"no active contract {contract_id}")


def _player_rfp_chance(state: GameState, bids: List[CompetitorBid]) -> float:
    chance = 0.5 + (float(state.reputation_score) - 50.0) / 200.0 - 0.1 * len(bids)
    return max(0.05, min(0.95, chance))


def open_rfp(state: GameState, rng: random.Random) -> Optional[RFPOffer]:
    pool = [d for d in catalog.CONTRACT_CATALOG if d.tier in (ContractTier.SILVER, ContractTier.GOLD)]
    d = rng.choice(pool)
    terms = terms_from_def(d, 1.0 + catalog.RFP_REVENUE_PREMIUM)
    terms.company = rng.choice(catalog.RFP_COMPANIES)

    bids: List[CompetitorBid] = []
    for comp in state.competitors:
        if rng.random() >= max(0.2, float(comp.aggression)):
            continue
        mod = catalog.PERSONALITIES[comp.personality].bid_modifier
        wc = 0.2 + float(comp.strength) / 200.0 - mod * 0.5
        if comp.specialization.value == d.contract_type:
            wc += 0.1
        bids.append(
            CompetitorBid(
                competitor_id=comp.id,
                competitor_name=comp.name,
                contract_type=d.contract_type,
                win_chance=round(max(0.05, min(0.95, wc)), 3),
                ticks_remaining=catalog.RFP_WINDOW_TICKS,
            )
        )

    rfp = RFPOffer(
        id=state.new_id("rfp"),
        terms=terms,
        win_chance=round(_player_rfp_chance(state, bids), 3),
        ticks_remaining=catalog.RFP_WINDOW_TICKS,
        bids=bids,
    )
    state.rfp_offers.append(rfp)
    state.log("rfp", f"RFP opened: {terms.company} ({d.contract_type}), {len(bids)} rival bids")
    return rfp


def _award_to_competitor(state: GameState, rfp: RFPOffer) -> None:
    if not rfp.bids:
        return
    best = max(rfp.bids, key=lambda b: b.win_chance)
    for comp in state.competitors:
        if comp.id == best.competitor_id:
            comp.contract_wins += 1
            state.log("rfp", f"{comp.name} won the {rfp.terms.contract_type} RFP")


def tick_rfps(state: GameState, rng: random.Random, interval: int) -> None:
    kept: List[RFPOffer] = []
    for rfp in state.rfp_offers:
        rfp.ticks_remaining -= 1
        rfp.win_chance = round(max(0.05, float(rfp.win_chance) - catalog.RFP_WIN_DECAY_PER_TICK), 3)
        for b in rfp.bids:
            b.ticks_remaining = max(0, b.ticks_remaining - 1)
        if rfp.ticks_remaining <= 0:
            state.counters.rfp_losses += 1
            _award_to_competitor(state, rfp)
            continue
        kept.append(rfp)
    state.rfp_offers = kept

    if int(interval) > 0 and int(state.tick) % int(interval) == 0:
        open_rfp(state, rng)


def bid_on_rfp(state: GameState, rfp_id: str, rng: random.Random) -> bool:
    """Submit the player's bid; returns True when the RFP is won."""

    rfp = next((r for r in state.rfp_offers if r.id == rfp_id), None)
    if rfp is None:
        raise CommandRejected(RejectKind.VALIDATION, f"no open RFP {rfp_id}")
    require(
        len(state.active_contracts) < catalog.MAX_ACTIVE_CONTRACTS,
        RejectKind.CAP,
        f"at most {catalog.MAX_ACTIVE_CONTRACTS} active contracts",
    )
    state.rfp_offers = [r for r in state.rfp_offers if r.id != rfp_id]
    won = rng.random() < float(rfp.win_chance)
    if won:
        _activate(state, rfp.terms, "rfp")
        state.counters.rfp_wins += 1
        if rfp.bids:
            state.counters.contracts_beaten_competitors += 1
            bidder_ids = {b.competitor_id for b in rfp.bids}
            for comp in state.competitors:
                if comp.id in bidder_ids:
                    comp.contract_losses += 1
        state.adjust_reputation(1.0)
        state.log("rfp", f"won RFP for {rfp.terms.company}")
    else:
        state.counters.rfp_losses += 1
        _award_to_competitor(state, rfp)
        state.log("rfp", f"lost RFP for {rfp.terms.company}")
    logger.info("rfp %s %s", rfp.id, "won" if won else "lost")
    return won
