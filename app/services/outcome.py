# app/services/outcome.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class FailureKind(str, Enum):
    BAD_REQUEST = "bad_request"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Failure:
    """
    Terminal result of an operation that did not happen.
    `cause` is kept for boundary logging only and never rendered to callers.
    """
    kind: FailureKind
    message: str
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


Outcome = Union[Success[T], Failure]


def bad_request(message: str) -> Failure:
    return Failure(FailureKind.BAD_REQUEST, message)


def forbidden(message: str, cause: Optional[BaseException] = None) -> Failure:
    return Failure(FailureKind.FORBIDDEN, message, cause)


def not_found(message: str) -> Failure:
    return Failure(FailureKind.NOT_FOUND, message)


def conflict(message: str) -> Failure:
    return Failure(FailureKind.CONFLICT, message)


def internal(message: str, cause: Optional[BaseException] = None) -> Failure:
    return Failure(FailureKind.INTERNAL, message, cause)
