from __future__ import annotations

from enum import Enum


class RejectKind(str, Enum):
    VALIDATION = "validation"
    FUNDS = "funds"
    CAP = "cap"


class CommandRejected(ValueError):
    """A player command failed validation; the caller keeps the previous state."""

    def __init__(self, kind: RejectKind, message: str) -> None:
        super().__init__(message)
        self.kind = RejectKind(kind)
        self.message = str(message)


def require(cond: bool, kind: RejectKind, message: str) -> None:
    if not cond:
        raise CommandRejected(kind, message)


def require_funds(money: float, cost: float, what: str) -> None:
    if float(money) < float(cost):
        raise CommandRejected(RejectKind.FUNDS, f"{what} costs {float(cost):,.0f}, have {float(money):,.0f}")
