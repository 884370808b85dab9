"""Outcome values returned by the rental lifecycle operations.

Expected business conditions (a book already on loan, an unknown rental, a
second return) are returned as values. Only unexpected persistence faults are
raised, as :class:`StorageFailure`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class RentalStarted:
    id: int
    book_id: int
    user_id: int
    rental_date: datetime
    return_deadline: datetime


@dataclass(frozen=True)
class RentalReturned:
    id: int
    return_date: datetime


@dataclass(frozen=True)
class Conflict:
    book_id: int
    reason: str = "currently on loan"


@dataclass(frozen=True)
class NotFound:
    entity: str
    identifier: int


@dataclass(frozen=True)
class AlreadyReturned:
    rental_id: int


StartOutcome = Union[RentalStarted, Conflict, NotFound]
ReturnOutcome = Union[RentalReturned, NotFound, AlreadyReturned]


class StorageFailure(RuntimeError):
    """A persistence fault that is not one of the business outcomes."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
