from __future__ import annotations

import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from fabricsim.webapp import create_app


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def test_state_and_commands() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = TestClient(create_app(base_dir=Path(td), seed=11))
        s = c.get("/api/state").json()
        _assert(s["money"] == 50_000.0 and s["tick"] == 0, "expected a fresh company")
        _assert(s["derived"]["grid"] == {"cols": 5, "rows": 5}, "expected the starter grid")
        _assert(s["derived"]["summary"], "expected summary lines")

        r = c.post("/api/command", json={"type": "add_cabinet", "col": 0, "row": 0, "environment": "production"})
        body = r.json()
        _assert(r.status_code == 200 and body["accepted"] is True, "expected add_cabinet accepted")
        _assert(body["state"]["money"] == 48_000.0 and len(body["state"]["cabinets"]) == 1, "expected one cabinet")

        r = c.post("/api/command", json={"type": "add_cabinet", "col": 5, "row": 0})
        _assert(r.status_code == 200 and r.json()["accepted"] is False, "expected out-of-bounds rejected")
        _assert(len(r.json()["state"]["cabinets"]) == 1, "expected state unchanged")

        r = c.post("/api/command", json={"type": "launch_rocket"})
        _assert(r.status_code == 400, f"expected 400 for unknown command, got {r.status_code}")


def test_tick_and_reset() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = TestClient(create_app(base_dir=Path(td), seed=11))
        s = c.post("/api/tick", json={"ticks": 5}).json()
        _assert(s["tick"] == 5, f"expected tick=5, got {s['tick']}")
        _assert(s["last_tick"]["tick"] == 5, "expected the last tick result")

        c.post("/api/tick", json={"ticks": 1, "ledger": True})
        _assert((Path(td) / "ledger.csv").exists(), "expected the ledger written")

        s = c.post("/api/reset", json={"seed": 3}).json()
        _assert(s["tick"] == 0 and s["rng_seed"] == 3, "expected a fresh seeded company")


def test_save_load_slots() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = TestClient(create_app(base_dir=Path(td), seed=11))
        c.post("/api/tick", json={"ticks": 3})
        r = c.post("/api/save/1")
        _assert(r.status_code == 200 and r.json()["tick"] == 3, "expected save to slot 1")
        _assert(c.post("/api/save/9").status_code == 400, "expected bad slot rejected")

        slots = c.get("/api/slots").json()["slots"]
        _assert(slots[0]["exists"] and slots[0]["tick"] == 3, "expected slot 1 listed")
        _assert(not slots[1]["exists"], "expected slot 2 empty")

        c.post("/api/tick", json={"ticks": 10})
        s = c.post("/api/load/1").json()
        _assert(s["tick"] == 3, f"expected tick 3 after load, got {s['tick']}")
        _assert("game_saved" in s["achievements"], "expected game_saved achievement in the saved state")
        _assert(c.post("/api/load/2").status_code == 404, "expected 404 for an empty slot")


def test_bad_numbers_and_args() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = TestClient(create_app(base_dir=Path(td), seed=11))
        _assert(c.post("/api/tick", json={"ticks": "abc"}).status_code == 400, "expected non-numeric ticks rejected")
        s = c.post("/api/tick", json={"ticks": 0}).json()
        _assert(s["tick"] == 0, "expected zero ticks to leave the clock alone")
        s = c.post("/api/tick", json={"ticks": -5}).json()
        _assert(s["tick"] == 0, "expected negative ticks clamped to zero")
        _assert(c.post("/api/reset", json={"seed": "soon"}).status_code == 400, "expected a non-numeric seed rejected")

        r = c.post("/api/command", json={"type": "add_cabinet", "args": [1, 2]})
        _assert(r.status_code == 200 and r.json()["accepted"] is False, "expected list args rejected without an error")
        s = c.get("/api/state").json()
        _assert(s["derived"]["ambient_temp"] == 24.0, f"expected a clear spring day, got {s['derived']['ambient_temp']}")


def test_catalog() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = TestClient(create_app(base_dir=Path(td)))
        cat = c.get("/api/catalog").json()
        _assert("add_cabinet" in cat["commands"], "expected the command list")
        _assert(set(cat["suites"]) == {"starter", "standard", "professional", "enterprise"}, "expected suite tiers")
        _assert(len(cat["achievements"]) >= 40, "expected the achievement catalog")
        _assert(set(cat["certifications"]) == {"soc2_type1", "soc2_type2", "hipaa", "pci_dss", "fedramp"}, "expected the certifications")
        _assert(cat["weather"]["heatwave"]["ambient_modifier"] == 10.0, "expected the weather table")
        _assert("install_aisle_containment" in cat["commands"], "expected the containment command")


def main() -> None:
    tests = [
        test_state_and_commands,
        test_tick_and_reset,
        test_save_load_slots,
        test_bad_numbers_and_args,
        test_catalog,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
