from __future__ import annotations

import logging
from datetime import datetime

from book_lending.models.lending_models import Rental
from book_lending.services.clock import to_storage_time
from book_lending.services.deadline import compute_deadline
from book_lending.services.outcomes import (
    AlreadyReturned,
    Conflict,
    NotFound,
    RentalReturned,
    RentalStarted,
    ReturnOutcome,
    StartOutcome,
)
from book_lending.services.rental_store import RentalStore

logger = logging.getLogger("book_lending.rentals")


class AvailabilityGuard:
    """Starts a rental only when the book has no active rental.

    The availability check and the insert are one store call. A conflict is
    a business outcome and is returned to the caller, never retried here.
    """

    def __init__(self, store: RentalStore) -> None:
        self.store = store

    def start(self, book_id: int, user_id: int, now: datetime) -> StartOutcome:
        # The deadline is derived from the stored rental date so both columns
        # stay exactly one rental period apart.
        rental_date = to_storage_time(now)
        return_deadline = compute_deadline(rental_date)
        inserted = self.store.insert_if_no_active_exists(book_id, user_id, rental_date, return_deadline)
        if isinstance(inserted, (Conflict, NotFound)):
            return inserted

        logger.info("Rental %s started: book %s by user %s", inserted.RentalID, book_id, user_id)
        return RentalStarted(
            id=inserted.RentalID,
            book_id=inserted.BookID,
            user_id=inserted.UserID,
            rental_date=inserted.RentalDate,
            return_deadline=inserted.ReturnDeadline,
        )


class ReturnProcessor:
    def __init__(self, store: RentalStore) -> None:
        self.store = store

    def complete(self, rental_id: int, user_id: int, now: datetime) -> ReturnOutcome:
        # Ownership is part of the lookup: another user's rental reads as missing.
        rental = self.store.find_by_user_and_rental(rental_id, user_id)
        if rental is None:
            return NotFound("rental", rental_id)
        if not rental.is_active:
            logger.info("Rental %s already returned", rental_id)
            return AlreadyReturned(rental_id)

        marked = self.store.mark_returned(rental_id, now)
        if isinstance(marked, AlreadyReturned):
            logger.info("Rental %s returned concurrently", rental_id)
            return marked
        if isinstance(marked, NotFound):
            return marked

        logger.info("Rental %s returned by user %s", rental_id, user_id)
        return RentalReturned(id=marked.RentalID, return_date=marked.ReturnDate)


def serialize_started(outcome: RentalStarted) -> dict:
    return {
        "id": outcome.id,
        "bookId": outcome.book_id,
        "rentalDate": outcome.rental_date,
        "returnDeadline": outcome.return_deadline,
    }


def serialize_current_rental(rental: Rental) -> dict:
    return {
        "rentalId": rental.RentalID,
        "bookId": rental.BookID,
        "bookName": rental.Book.Title if rental.Book else None,
        "rentalDate": rental.RentalDate,
        "returnDeadline": rental.ReturnDeadline,
    }


def serialize_history_rental(rental: Rental) -> dict:
    return {
        "rentalId": rental.RentalID,
        "bookId": rental.BookID,
        "bookName": rental.Book.Title if rental.Book else None,
        "rentalDate": rental.RentalDate,
        "returnDate": rental.ReturnDate,
    }


def serialize_admin_rental(rental: Rental) -> dict:
    payload = serialize_current_rental(rental)
    payload["userId"] = rental.UserID
    payload["userName"] = rental.User.Name if rental.User else None
    return payload
