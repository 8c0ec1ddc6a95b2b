# src/poaledger/ledger/stages.py
from __future__ import annotations

from enum import IntEnum
from typing import Any, Mapping

from poaledger.runtime.errors import StageGuardViolation


class Stage(IntEnum):
    Preview = 0
    PreFunding = 1
    FiatFunding = 2
    EthFunding = 3
    FundingSuccessful = 4
    FundingCancelled = 5
    TimedOut = 6
    Active = 7
    Terminated = 8


FUNDING_STAGES = frozenset({Stage.PreFunding, Stage.FiatFunding, Stage.EthFunding})

# Stages in which investors may reclaim what they put in.
RECLAIM_STAGES = frozenset({Stage.TimedOut, Stage.FundingCancelled})

# Dividend-bearing stages. Termination keeps pending obligations payable.
PAYOUT_STAGES = frozenset({Stage.Active, Stage.Terminated})


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def stage_of(token: Mapping[str, Any]) -> Stage:
    return Stage(_as_int(token.get("stage"), 0))


def funding_deadline(token: Mapping[str, Any]) -> int:
    return _as_int(token.get("start_time_for_funding_period")) + _as_int(token.get("duration_for_funding_period"))


def activation_deadline(token: Mapping[str, Any]) -> int:
    return funding_deadline(token) + _as_int(token.get("duration_for_activation_period"))


def effective_stage(token: Mapping[str, Any], now: int) -> Stage:
    """Stage the token is in once elapsed deadlines are taken into account.

    Pure: nothing is written. Funding stages time out at the funding
    deadline; a successful funding that is never activated times out at the
    activation deadline.
    """
    st = stage_of(token)
    if st in FUNDING_STAGES and int(now) >= funding_deadline(token):
        return Stage.TimedOut
    if st == Stage.FundingSuccessful and int(now) >= activation_deadline(token):
        return Stage.TimedOut
    return st


def require_stage(token: Mapping[str, Any], *allowed: Stage, action: str = "") -> Stage:
    st = stage_of(token)
    if st not in allowed:
        raise StageGuardViolation(
            "wrong_stage",
            {"action": action, "stage": st.name, "allowed": [s.name for s in allowed]},
        )
    return st


__all__ = [
    "FUNDING_STAGES",
    "PAYOUT_STAGES",
    "RECLAIM_STAGES",
    "Stage",
    "activation_deadline",
    "effective_stage",
    "funding_deadline",
    "require_stage",
    "stage_of",
]
