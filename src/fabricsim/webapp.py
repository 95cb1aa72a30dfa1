from __future__ import annotations

import copy
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from fabricsim import catalog
from fabricsim.commands import COMMAND_TYPES, apply_command
from fabricsim.engine import EngineConfig, new_game, simulate_tick
from fabricsim.grid import containment_bonus
from fabricsim.models import GameState
from fabricsim.progression import can_prestige, check_achievements, prestige_problems
from fabricsim.reporting import summary_lines
from fabricsim.storage import append_ledger_csv, check_slot, data_dir, list_slots, load_game, save_game
from fabricsim.weather import ambient_temp


MAX_TICKS_PER_CALL = 2000


def _int_field(payload: Dict[str, Any], name: str, default: Optional[int]) -> Optional[int]:
    v = payload.get(name)
    if v is None:
        return default
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError) as e:
        raise HTTPException(status_code=400, detail=f"'{name}' must be an integer") from e


def _state_to_dto(state: GameState) -> Dict[str, Any]:
    d = asdict(state)
    # Display helpers precomputed server-side so clients never re-derive them.
    d["derived"] = {
        "reputation_tier": catalog.reputation_tier(state.reputation_score).tier,
        "ambient_temp": ambient_temp(state),
        "containment_bonus": containment_bonus(state),
        "grid": {"cols": catalog.suite_config(state.suite_tier).cols, "rows": catalog.suite_config(state.suite_tier).rows},
        "can_prestige": can_prestige(state),
        "prestige_blockers": prestige_problems(state),
        "summary": summary_lines(state),
    }
    return d


def _catalog_dto() -> Dict[str, Any]:
    return {
        "suites": {t.value: asdict(c) for t, c in catalog.SUITE_TIERS.items()},
        "customer_types": {t.value: asdict(c) for t, c in catalog.CUSTOMER_TYPES.items()},
        "environments": {t.value: asdict(c) for t, c in catalog.ENVIRONMENTS.items()},
        "tech_tree": {k: asdict(t) for k, t in catalog.TECH_TREE.items()},
        "contracts": [asdict(c) for c in catalog.contract_defs()],
        "incidents": {k: asdict(d) for k, d in catalog.INCIDENT_CATALOG.items()},
        "loans": [asdict(o) for o in catalog.LOAN_OPTIONS],
        "generators": [asdict(g) for g in catalog.GENERATOR_OPTIONS],
        "insurance": {t.value: asdict(c) for t, c in catalog.INSURANCE.items()},
        "staff_roles": {t.value: asdict(c) for t, c in catalog.STAFF_ROLES.items()},
        "regions": {k: asdict(r) for k, r in catalog.REGIONS.items()},
        "seasons": {t.value: asdict(c) for t, c in catalog.SEASONS.items()},
        "weather": {t.value: asdict(c) for t, c in catalog.WEATHER.items()},
        "certifications": {t.value: asdict(c) for t, c in catalog.COMPLIANCE_CERTS.items()},
        "achievements": [asdict(a) for a in catalog.ACHIEVEMENTS],
        "commands": sorted(COMMAND_TYPES),
    }


def create_app(base_dir: Optional[Path] = None, cfg: Optional[EngineConfig] = None, seed: Optional[int] = None) -> FastAPI:
    app = FastAPI(title="Data Center Fabric Simulator API")

    # Allow Vite dev server or other local frontends.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    root = Path(base_dir) if base_dir is not None else data_dir()
    engine_cfg = cfg or EngineConfig()
    lock = threading.Lock()
    holder: Dict[str, GameState] = {"state": new_game(seed=seed)}

    @app.get("/api/state")
    def api_state():
        with lock:
            return _state_to_dto(holder["state"])

    @app.post("/api/tick")
    def api_tick(payload: dict = Body(default={})):  # {ticks:int}
        ticks = max(0, min(MAX_TICKS_PER_CALL, _int_field(payload, "ticks", 1)))
        with lock:
            state = holder["state"]
            for _ in range(ticks):
                if state.bankrupt:
                    break
                state = simulate_tick(state, engine_cfg)
                if bool(payload.get("ledger", False)):
                    append_ledger_csv(state, root)
            holder["state"] = state
            return _state_to_dto(state)

    @app.post("/api/command")
    def api_command(payload: dict = Body(default={})):  # {type:str, ...args}
        if str(payload.get("type") or "") not in COMMAND_TYPES:
            raise HTTPException(status_code=400, detail=f"unknown command: {payload.get('type')}")
        with lock:
            before = holder["state"]
            after = apply_command(before, payload)
            holder["state"] = after
            return {"accepted": after is not before, "state": _state_to_dto(after)}

    @app.post("/api/reset")
    def api_reset(payload: dict = Body(default={})):  # {seed?:int, region_id?:str}
        reset_seed = _int_field(payload, "seed", seed)
        with lock:
            holder["state"] = new_game(
                seed=reset_seed,
                region_id=str(payload.get("region_id") or catalog.DEFAULT_REGION),
            )
            return _state_to_dto(holder["state"])

    @app.get("/api/slots")
    def api_slots():
        return {"slots": list_slots(root)}

    @app.post("/api/save/{slot}")
    def api_save(slot: int):
        try:
            check_slot(slot)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        with lock:
            state = copy.deepcopy(holder["state"])
            state.counters.saves += 1
            check_achievements(state)
            path = save_game(state, slot, root)
            holder["state"] = state
            return {"slot": slot, "path": str(path), "tick": state.tick}

    @app.post("/api/load/{slot}")
    def api_load(slot: int):
        with lock:
            try:
                holder["state"] = load_game(slot, root)
            except FileNotFoundError as e:
                raise HTTPException(status_code=404, detail=f"slot {slot} is empty") from e
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            return _state_to_dto(holder["state"])

    @app.get("/api/catalog")
    def api_catalog():
        return _catalog_dto()

    return app


app = create_app()
