from __future__ import annotations

import csv
import dataclasses
import json
import logging
import typing
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from fabricsim.models import FinanceBreakdown, GameState

logger = logging.getLogger(__name__)

SAVE_VERSION = "1.0.0"
MAX_SLOTS = 3


def project_root() -> Path:
    # .../src/fabricsim/storage.py -> parents[2] == repo root
    return Path(__file__).resolve().parents[2]


def data_dir() -> Path:
    p = project_root() / "data"
    p.mkdir(parents=True, exist_ok=True)
    return p


def saves_dir(base_dir: Optional[Path] = None) -> Path:
    p = (Path(base_dir) if base_dir is not None else data_dir()) / "saves"
    p.mkdir(parents=True, exist_ok=True)
    return p


def ledger_path(base_dir: Optional[Path] = None) -> Path:
    return (Path(base_dir) if base_dir is not None else data_dir()) / "ledger.csv"


def check_slot(slot: int) -> int:
    s = int(slot)
    if not 1 <= s <= MAX_SLOTS:
        raise ValueError(f"save slot must be 1..{MAX_SLOTS}, got {slot}")
    return s


def slot_path(slot: int, base_dir: Optional[Path] = None) -> Path:
    return saves_dir(base_dir) / f"slot_{check_slot(slot)}.json"


# Snapshot <-> JSON


def _build(tp: Any, value: Any, default: Any) -> Any:
    """Rebuild a value of annotated type ``tp`` from parsed JSON, tolerating gaps."""

    if value is None:
        return default
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is typing.Union:
        inner = [a for a in args if a is not type(None)]
        return _build(inner[0], value, default) if len(inner) == 1 else value
    if origin is list:
        item_tp = args[0] if args else Any
        return [_build(item_tp, v, None) for v in (value or [])]
    if origin is dict:
        val_tp = args[1] if len(args) > 1 else Any
        return {str(k): _build(val_tp, v, None) for k, v in (value or {}).items()}
    if tp is Any:
        return value
    if isinstance(tp, type) and issubclass(tp, Enum):
        try:
            return tp(value)
        except ValueError:
            logger.debug("unknown %s value %r in save; using default", tp.__name__, value)
            return default
    if dataclasses.is_dataclass(tp):
        return _build_dataclass(tp, value)
    if tp is float:
        return float(value)
    if tp is int:
        return int(value)
    if tp is bool:
        return bool(value)
    if tp is str:
        return str(value)
    return value


def _field_default(f: dataclasses.Field) -> Any:
    if f.default is not dataclasses.MISSING:
        return f.default
    if f.default_factory is not dataclasses.MISSING:  # type: ignore[misc]
        return f.default_factory()  # type: ignore[misc]
    return None


def _build_dataclass(cls: Any, d: Any) -> Any:
    if not isinstance(d, dict):
        raise ValueError(f"{cls.__name__}: expected an object, got {type(d).__name__}")
    hints = typing.get_type_hints(cls)
    kwargs: Dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name not in d:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:  # type: ignore[misc]
                raise ValueError(f"{cls.__name__}: missing required field '{f.name}'")
            continue
        kwargs[f.name] = _build(hints.get(f.name, Any), d[f.name], _field_default(f))
    return cls(**kwargs)


def state_to_dict(state: GameState) -> Dict[str, Any]:
    return asdict(state)


def state_from_dict(d: Dict[str, Any]) -> GameState:
    return _build_dataclass(GameState, d or {})


def export_snapshot(state: GameState) -> str:
    payload = {"version": SAVE_VERSION, "state": state_to_dict(state)}
    return json.dumps(payload, ensure_ascii=False)


def import_snapshot(text: str) -> GameState:
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("snapshot must be a JSON object")
    return state_from_dict(payload.get("state", payload))


# Save slots


def save_game(state: GameState, slot: int, base_dir: Optional[Path] = None) -> Path:
    p = slot_path(slot, base_dir)
    payload = {
        "version": SAVE_VERSION,
        "saved_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "state": state_to_dict(state),
    }
    p.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("saved tick %s to slot %s", state.tick, slot)
    return p


def load_game(slot: int, base_dir: Optional[Path] = None) -> GameState:
    p = slot_path(slot, base_dir)
    if not p.exists():
        raise FileNotFoundError(str(p))
    payload = json.loads(p.read_text(encoding="utf-8"))
    state = state_from_dict(payload.get("state", {}))
    logger.info("loaded slot %s (tick %s)", slot, state.tick)
    return state


def delete_slot(slot: int, base_dir: Optional[Path] = None) -> bool:
    p = slot_path(slot, base_dir)
    if not p.exists():
        return False
    p.unlink()
    return True


def list_slots(base_dir: Optional[Path] = None) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for slot in range(1, MAX_SLOTS + 1):
        p = slot_path(slot, base_dir)
        info: Dict[str, Any] = {"slot": slot, "exists": p.exists()}
        if p.exists():
            try:
                payload = json.loads(p.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                info["corrupt"] = True
                out.append(info)
                continue
            st = payload.get("state", {}) or {}
            info.update(
                saved_at=payload.get("saved_at"),
                version=payload.get("version"),
                tick=int(st.get("tick", 0) or 0),
                money=float(st.get("money", 0.0) or 0.0),
                suite_tier=st.get("suite_tier"),
                cabinets=len(st.get("cabinets") or []),
            )
        out.append(info)
    return out


# Ledger


LEDGER_COLUMNS = ["tick"] + [f.name for f in dataclasses.fields(FinanceBreakdown)] + ["money"]


def append_ledger_csv(state: GameState, base_dir: Optional[Path] = None) -> Path:
    """Append the latest tick's finance breakdown as one CSV row."""

    p = ledger_path(base_dir)
    p.parent.mkdir(parents=True, exist_ok=True)
    fin = asdict(state.finance)
    write_header = (not p.exists()) or (p.stat().st_size <= 0)
    with p.open("a", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        if write_header:
            w.writerow(LEDGER_COLUMNS)
        row = [state.tick] + [round(float(fin.get(c, 0.0)), 4) for c in LEDGER_COLUMNS[1:-1]] + [round(float(state.money), 2)]
        w.writerow(row)
    return p
