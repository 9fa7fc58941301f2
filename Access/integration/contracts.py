from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Permission:
    """Actions a user may perform on one resource class."""

    resource: str
    actions: frozenset[str] = frozenset()

    def allows(self, action: str) -> bool:
        return action in self.actions


class ErrorKind(str, Enum):
    REMOTE_CHECK_FAILURE = "remote_check_failure"
    ROLE_MUTATION_FAILURE = "role_mutation_failure"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Failure:
    kind: ErrorKind
    detail: str = ""


Outcome = Union[Success[T], Failure]
