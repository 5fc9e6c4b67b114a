"""Tagged outcomes returned by the rules modules.

Rule violations are values, not exceptions: every rules function returns
either ``Ok`` or ``Failure`` and the caller decides what to show. Only a
malformed call (wrong types, unknown step names) raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar, Union

T = TypeVar("T")

FailureKind = Literal[
    "invalid_transition",
    "invalid_state",
    "active_appointment_conflict",
    "outside_business_hours",
    "non_working_day",
    "stale_state",
]

INVALID_TRANSITION: FailureKind = "invalid_transition"
INVALID_STATE: FailureKind = "invalid_state"
ACTIVE_APPOINTMENT_CONFLICT: FailureKind = "active_appointment_conflict"
OUTSIDE_BUSINESS_HOURS: FailureKind = "outside_business_hours"
NON_WORKING_DAY: FailureKind = "non_working_day"
STALE_STATE: FailureKind = "stale_state"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    ok: Literal[False] = False


Result = Union[Ok[T], Failure]


class RuleViolation(Exception):
    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure

    @property
    def kind(self) -> FailureKind:
        return self.failure.kind


def unwrap(result: Result[T]) -> T:
    if isinstance(result, Failure):
        raise RuleViolation(result)
    return result.value
