"""Structured results returned by the membership and message services.

Expected failures are values rather than exceptions so that the HTTP layer
and the realtime gateway can each map them to their own error vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class NotFound:
    detail: str


@dataclass(frozen=True, slots=True)
class Forbidden:
    detail: str


@dataclass(frozen=True, slots=True)
class InvalidInput:
    detail: str


Failure = Union[NotFound, Forbidden, InvalidInput]
Outcome = Union[Success[T], NotFound, Forbidden, InvalidInput]

FAILURE_TYPES = (NotFound, Forbidden, InvalidInput)


def is_failure(value: object) -> bool:
    return isinstance(value, FAILURE_TYPES)
