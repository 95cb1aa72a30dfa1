from __future__ import annotations

import logging
from typing import List, Optional

from fabricsim import catalog
from fabricsim.errors import RejectKind, require, require_funds
from fabricsim.models import Certification, ComplianceAudit, ComplianceCert, GameState, StaffRole

logger = logging.getLogger(__name__)


def certification(state: GameState, cert: ComplianceCert) -> Optional[Certification]:
    for c in state.certifications:
        if c.cert == cert:
            return c
    return None


def has_certification(state: GameState, cert: ComplianceCert) -> bool:
    c = certification(state, cert)
    return c is not None and int(c.expires_tick) > int(state.tick)


def held_certifications(state: GameState) -> List[ComplianceCert]:
    return [c.cert for c in state.certifications if int(c.expires_tick) > int(state.tick)]


def audit_problems(state: GameState, cert: ComplianceCert) -> List[str]:
    cfg = catalog.COMPLIANCE_CERTS[cert]
    problems: List[str] = []
    order = catalog.SECURITY_ORDER
    if order.index(state.security_tier) < order.index(cfg.min_security):
        problems.append(f"needs {cfg.min_security.value} security")
    if float(state.reputation_score) < cfg.min_reputation:
        problems.append(f"needs reputation {cfg.min_reputation:.0f}")
    officers = sum(1 for s in state.staff if s.role == StaffRole.SECURITY_OFFICER)
    if officers < cfg.min_officers:
        problems.append(f"needs {cfg.min_officers} security officers")
    return problems


def start_audit(state: GameState, cert: ComplianceCert) -> ComplianceAudit:
    """Pay for an audit; the certification is granted when it finishes.

    A held certification can only be re-audited once its expiry is closer
    than the audit takes.
    """

    cfg = catalog.COMPLIANCE_CERTS[cert]
    require(state.active_audit is None, RejectKind.CAP, "an audit is already running")
    held = certification(state, cert)
    if held is not None and has_certification(state, cert):
        left = int(held.expires_tick) - int(state.tick)
        require(left <= cfg.audit_ticks, RejectKind.VALIDATION, f"{cfg.label} is valid for {left} more ticks")
    problems = audit_problems(state, cert)
    require(not problems, RejectKind.VALIDATION, "; ".join(problems))
    require_funds(state.money, cfg.audit_cost, f"a {cfg.label} audit")
    state.money -= cfg.audit_cost
    state.active_audit = ComplianceAudit(cert=cert, ticks_remaining=int(cfg.audit_ticks))
    state.log("compliance", f"{cfg.label} audit started")
    return state.active_audit


def tick_compliance(state: GameState) -> None:
    audit = state.active_audit
    if audit is not None:
        audit.ticks_remaining -= 1
        if audit.ticks_remaining <= 0:
            cfg = catalog.COMPLIANCE_CERTS[audit.cert]
            granted = Certification(
                cert=audit.cert,
                granted_tick=int(state.tick),
                expires_tick=int(state.tick) + int(cfg.valid_ticks),
            )
            state.certifications = [c for c in state.certifications if c.cert != audit.cert] + [granted]
            state.active_audit = None
            state.log("compliance", f"{cfg.label} certified until tick {granted.expires_tick}")
            logger.info("certification %s granted at tick %s", audit.cert.value, state.tick)

    kept: List[Certification] = []
    for c in state.certifications:
        if int(c.expires_tick) <= int(state.tick):
            state.log("compliance", f"{catalog.COMPLIANCE_CERTS[c.cert].label} certification lapsed")
            logger.info("certification %s expired at tick %s", c.cert.value, state.tick)
            continue
        kept.append(c)
    state.certifications = kept
