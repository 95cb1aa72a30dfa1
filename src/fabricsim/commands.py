"""Player command surface.

Every command is a pure reducer: ``apply_command(state, command)`` returns a
new snapshot when the command is accepted and the *same* object when it is
rejected, so callers detect failure by identity.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Union

from fabricsim import compliance, contracts, finance, grid, incidents, market, progression
from fabricsim.engine import new_game, persist_rng_state, refresh_derived, rng_from_state
from fabricsim.errors import CommandRejected, RejectKind, require
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

__all__ = ["Command", "CommandRejected", "RejectKind", "apply_command", "COMMAND_TYPES"]

logger = logging.getLogger(__name__)


@dataclass
class Command:
    type: str
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Command":
        raw = d.get("args") or {}
        if not isinstance(raw, Mapping):
            raise CommandRejected(RejectKind.VALIDATION, "args must be an object")
        args = dict(raw)
        for k, v in d.items():
            if k not in ("type", "args"):
                args[k] = v
        return cls(type=str(d.get("type") or ""), args=args)


def _arg(args: Mapping[str, Any], name: str) -> Any:
    if name not in args:
        raise CommandRejected(RejectKind.VALIDATION, f"missing argument '{name}'")
    return args[name]


def _int(args: Mapping[str, Any], name: str) -> int:
    v = _arg(args, name)
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError) as e:
        raise CommandRejected(RejectKind.VALIDATION, f"argument '{name}' must be an integer") from e


def _enum(enum_cls, value: Any, default: Any = None):
    if value is None:
        if default is None:
            raise CommandRejected(RejectKind.VALIDATION, f"missing {enum_cls.__name__}")
        return default
    try:
        return enum_cls(value)
    except (TypeError, ValueError) as e:
        raise CommandRejected(RejectKind.VALIDATION, f"unknown {enum_cls.__name__}: {value}") from e


# Handlers mutate the working copy they are given. Handlers that return a
# GameState replace the working copy (new game, prestige, load).

Handler = Callable[[GameState, Mapping[str, Any]], Any]


def _add_cabinet(s: GameState, a: Mapping[str, Any]) -> None:
    grid.add_cabinet(
        s,
        _int(a, "col"),
        _int(a, "row"),
        _enum(Environment, a.get("environment"), Environment.PRODUCTION),
        _enum(CustomerType, a.get("customer_type"), CustomerType.GENERAL),
        _enum(Facing, a.get("facing"), Facing.NORTH),
    )


def _bid_on_rfp(s: GameState, a: Mapping[str, Any]) -> None:
    rng = rng_from_state(s)
    contracts.bid_on_rfp(s, str(_arg(a, "rfp_id")), rng)
    persist_rng_state(s, rng)


def _run_drill(s: GameState, a: Mapping[str, Any]) -> None:
    rng = rng_from_state(s)
    incidents.run_drill(s, rng)
    persist_rng_state(s, rng)


def _do_prestige(s: GameState, a: Mapping[str, Any]) -> GameState:
    nxt = progression.next_prestige(s)
    fresh = new_game(seed=int(s.rng_seed) + 1, region_id=s.region_id, prestige=nxt)
    fresh.log("prestige", f"prestige level {nxt.level} reached")
    logger.info("prestige to level %s after %s ticks", nxt.level, s.tick)
    return fresh


def _save_game(s: GameState, a: Mapping[str, Any]) -> None:
    from fabricsim import storage

    slot = _int(a, "slot")
    try:
        storage.check_slot(slot)
    except ValueError as e:
        raise CommandRejected(RejectKind.VALIDATION, str(e)) from e
    s.counters.saves += 1
    storage.save_game(s, slot)


def _load_game(s: GameState, a: Mapping[str, Any]) -> GameState:
    from fabricsim import storage

    try:
        return storage.load_game(_int(a, "slot"))
    except FileNotFoundError as e:
        raise CommandRejected(RejectKind.VALIDATION, f"slot is empty: {e}") from e
    except ValueError as e:
        raise CommandRejected(RejectKind.VALIDATION, str(e)) from e


def _new_game(s: GameState, a: Mapping[str, Any]) -> GameState:
    return new_game(
        seed=_int(a, "seed") if a.get("seed") is not None else None,
        region_id=str(a.get("region_id") or s.region_id),
        prestige=s.prestige,
    )


COMMAND_TYPES: Dict[str, Handler] = {
    # Facility
    "add_cabinet": _add_cabinet,
    "remove_cabinet": lambda s, a: grid.remove_cabinet(s, str(_arg(a, "cabinet_id"))),
    "toggle_cabinet_power": lambda s, a: grid.toggle_cabinet_power(s, str(_arg(a, "cabinet_id"))),
    "toggle_spine_power": lambda s, a: grid.toggle_spine_power(s, str(_arg(a, "spine_id"))),
    "upgrade_next_cabinet": lambda s, a: grid.upgrade_next_cabinet(s),
    "add_leaf_to_next_cabinet": lambda s, a: grid.add_leaf_to_next_cabinet(s),
    "add_spine_switch": lambda s, a: grid.add_spine_switch(s),
    "upgrade_suite": lambda s, a: grid.upgrade_suite(s),
    "upgrade_cooling": lambda s, a: grid.upgrade_cooling(s),
    "refresh_servers": lambda s, a: grid.refresh_servers(s, str(_arg(a, "cabinet_id"))),
    "install_aisle_containment": lambda s, a: grid.install_aisle_containment(s, _int(a, "aisle")),
    # Contracts
    "accept_contract": lambda s, a: contracts.accept_offer(s, _int(a, "offer_index")),
    "cancel_contract": lambda s, a: contracts.cancel_contract(s, str(_arg(a, "contract_id"))),
    "bid_on_rfp": _bid_on_rfp,
    # Incidents
    "resolve_incident": lambda s, a: incidents.resolve_incident(s, str(_arg(a, "incident_id"))),
    "run_drill": _run_drill,
    # Finance and power
    "take_loan": lambda s, a: finance.take_loan(s, _int(a, "option_index")),
    "repay_loan": lambda s, a: finance.repay_loan(s, str(_arg(a, "loan_id"))),
    "buy_insurance": lambda s, a: finance.buy_insurance(s, _enum(InsuranceType, a.get("policy"))),
    "cancel_insurance": lambda s, a: finance.cancel_insurance(s, _enum(InsuranceType, a.get("policy"))),
    "buy_generator": lambda s, a: finance.buy_generator(s, _int(a, "option_index")),
    "upgrade_power_redundancy": lambda s, a: finance.upgrade_power_redundancy(s),
    "set_energy_source": lambda s, a: finance.set_energy_source(s, _enum(EnergySource, a.get("source"))),
    # Staff
    "hire_staff": lambda s, a: market.hire_staff(s, _enum(StaffRole, a.get("role"))),
    "fire_staff": lambda s, a: market.fire_staff(s, str(_arg(a, "staff_id"))),
    "counter_poach": lambda s, a: market.counter_poach(s, str(_arg(a, "attempt_id"))),
    # Progression
    "start_research": lambda s, a: progression.start_research(s, str(_arg(a, "tech_id"))),
    "patent_tech": lambda s, a: progression.patent_tech(s, str(_arg(a, "tech_id"))),
    "upgrade_ops_tier": lambda s, a: progression.upgrade_ops_tier(s),
    "upgrade_security_tier": lambda s, a: progression.upgrade_security_tier(s),
    "start_compliance_audit": lambda s, a: compliance.start_audit(s, _enum(ComplianceCert, a.get("cert"))),
    "do_prestige": _do_prestige,
    # Game
    "new_game": _new_game,
    "save_game": _save_game,
    "load_game": _load_game,
}


def apply_command(state: GameState, command: Union[Command, Mapping[str, Any]]) -> GameState:
    """Run one player command.

    Accepted commands return a fresh snapshot with derived aggregates and
    achievements refreshed. Rejected commands return ``state`` itself.
    """

    try:
        cmd = command if isinstance(command, Command) else Command.from_dict(command)
    except CommandRejected as e:
        logger.debug("rejected malformed command: %s", e.message)
        return state
    handler = COMMAND_TYPES.get(cmd.type)
    if handler is None:
        logger.debug("rejected unknown command %r", cmd.type)
        return state

    work = copy.deepcopy(state)
    try:
        if state.bankrupt:
            require(cmd.type in ("new_game", "load_game"), RejectKind.VALIDATION, "the company is bankrupt")
        out = handler(work, cmd.args)
    except CommandRejected as e:
        logger.debug("rejected %s (%s): %s", cmd.type, e.kind.value, e.message)
        return state

    if isinstance(out, GameState):
        work = out
    refresh_derived(work)
    progression.check_achievements(work)
    return work
