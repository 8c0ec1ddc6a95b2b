from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass
class ApplyError(Exception):
    """Canonical error type for contract apply and dispatch failures.

    Every guard failure raises (a subclass of) this; the chain executor rolls
    the whole call back and turns it into a rejected receipt.
    """

    code: str
    reason: str
    details: Any | None = None

    # True for "try again later" failures (stage/time guards, oracle not ready).
    retryable: ClassVar[bool] = False

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class _CodedApplyError(ApplyError):
    """ApplyError whose code is fixed by the subclass."""

    CODE: ClassVar[str] = "apply_error"

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(self.CODE, reason, details)


class StageGuardViolation(_CodedApplyError):
    CODE = "stage_guard"
    retryable = True


class AuthorizationViolation(_CodedApplyError):
    CODE = "forbidden"


class InsufficientFunds(_CodedApplyError):
    CODE = "insufficient_funds"


class InsufficientBalance(_CodedApplyError):
    CODE = "insufficient_balance"


class InsufficientAllowance(_CodedApplyError):
    CODE = "insufficient_allowance"


class RateNotReady(_CodedApplyError):
    CODE = "rate_not_ready"
    retryable = True


class FeeOutOfTolerance(_CodedApplyError):
    CODE = "fee_out_of_tolerance"


class GoalExceeded(_CodedApplyError):
    """A fiat purchase would overshoot the funding goal.

    Eth overfill never raises this: the excess is refunded in the same call.
    """

    CODE = "goal_exceeded"


class NothingToClaim(_CodedApplyError):
    CODE = "nothing_to_claim"


class StorageLayoutViolation(_CodedApplyError):
    CODE = "storage_layout"


class InvalidArgument(_CodedApplyError):
    CODE = "invalid_payload"


class UnknownMethod(_CodedApplyError):
    CODE = "tx_unimplemented"


class ContractNotFound(_CodedApplyError):
    CODE = "not_found"


__all__ = [
    "ApplyError",
    "AuthorizationViolation",
    "ContractNotFound",
    "FeeOutOfTolerance",
    "GoalExceeded",
    "InsufficientAllowance",
    "InsufficientBalance",
    "InsufficientFunds",
    "InvalidArgument",
    "NothingToClaim",
    "RateNotReady",
    "StageGuardViolation",
    "StorageLayoutViolation",
    "UnknownMethod",
]
