from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from book_lending.models.lending_models import Book, Rental, User
from book_lending.services.clock import to_storage_time
from book_lending.services.outcomes import AlreadyReturned, Conflict, NotFound, StorageFailure

logger = logging.getLogger("book_lending.rentals")

ACTIVE_BOOK_INDEX = "UX_Rental_ActiveBook"


def _is_active_book_violation(exc: IntegrityError) -> bool:
    # PostgreSQL names the index, SQLite names the indexed column.
    message = str(exc.orig)
    return ACTIVE_BOOK_INDEX in message or "Rental.BookID" in message


class RentalStore:
    """Durable rental records behind one SQLAlchemy session.

    Every write is its own transaction and is committed (or rolled back)
    before the method returns. The two writes are single conditional
    statements, so the database arbitrates concurrent callers: the partial
    unique index on active rentals for ``insert_if_no_active_exists`` and a
    ``ReturnDate IS NULL`` guard for ``mark_returned``.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _storage_guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Rental store operation %s failed", operation)
            raise StorageFailure(operation, str(exc)) from exc

    def _rental_query(self):
        return select(Rental).options(selectinload(Rental.Book), selectinload(Rental.User))

    def find_active_by_book(self, book_id: int) -> Rental | None:
        with self._storage_guard("find_active_by_book"):
            stmt = self._rental_query().where(Rental.BookID == book_id).where(Rental.ReturnDate.is_(None))
            return self.db.execute(stmt).scalars().first()

    def find_by_user_and_rental(self, rental_id: int, user_id: int) -> Rental | None:
        with self._storage_guard("find_by_user_and_rental"):
            stmt = (
                self._rental_query()
                .where(Rental.RentalID == rental_id)
                .where(Rental.UserID == user_id)
            )
            return self.db.execute(stmt).scalars().first()

    def insert_if_no_active_exists(
        self,
        book_id: int,
        user_id: int,
        rental_date: datetime,
        return_deadline: datetime,
    ) -> Rental | Conflict | NotFound:
        with self._storage_guard("insert_if_no_active_exists"):
            if self.db.get(Book, book_id) is None:
                self.db.rollback()
                return NotFound("book", book_id)
            if self.db.get(User, user_id) is None:
                self.db.rollback()
                return NotFound("user", user_id)

            rental = Rental(
                BookID=book_id,
                UserID=user_id,
                RentalDate=to_storage_time(rental_date),
                ReturnDeadline=to_storage_time(return_deadline),
                ReturnDate=None,
            )
            self.db.add(rental)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                if not _is_active_book_violation(exc):
                    raise
                logger.info("Book %s already has an active rental; insert for user %s rejected", book_id, user_id)
                return Conflict(book_id)
            return rental

    def mark_returned(self, rental_id: int, return_date: datetime) -> Rental | NotFound | AlreadyReturned:
        with self._storage_guard("mark_returned"):
            stored_date = to_storage_time(return_date)
            stmt = (
                update(Rental)
                .where(Rental.RentalID == rental_id)
                .where(Rental.ReturnDate.is_(None))
                .values(
                    ReturnDate=case(
                        (Rental.RentalDate > stored_date, Rental.RentalDate),
                        else_=stored_date,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount == 1:
                # Read back inside the same transaction; nothing is left open after the commit.
                rental = self.db.get(Rental, rental_id, populate_existing=True)
                self.db.commit()
                return rental

            exists = self.db.get(Rental, rental_id, populate_existing=True) is not None
            self.db.rollback()
            if not exists:
                return NotFound("rental", rental_id)
            return AlreadyReturned(rental_id)

    def list_active(self) -> list[Rental]:
        with self._storage_guard("list_active"):
            stmt = self._rental_query().where(Rental.ReturnDate.is_(None)).order_by(Rental.RentalDate, Rental.RentalID)
            return list(self.db.execute(stmt).scalars().all())

    def list_active_by_user(self, user_id: int) -> list[Rental]:
        with self._storage_guard("list_active_by_user"):
            stmt = (
                self._rental_query()
                .where(Rental.UserID == user_id)
                .where(Rental.ReturnDate.is_(None))
                .order_by(Rental.RentalDate, Rental.RentalID)
            )
            return list(self.db.execute(stmt).scalars().all())

    def list_history_by_user(self, user_id: int) -> list[Rental]:
        with self._storage_guard("list_history_by_user"):
            stmt = (
                self._rental_query()
                .where(Rental.UserID == user_id)
                .where(Rental.ReturnDate.is_not(None))
                .order_by(Rental.ReturnDate.desc(), Rental.RentalID.desc())
            )
            return list(self.db.execute(stmt).scalars().all())

    def list_by_book(self, book_id: int) -> list[Rental]:
        with self._storage_guard("list_by_book"):
            stmt = self._rental_query().where(Rental.BookID == book_id).order_by(Rental.RentalDate, Rental.RentalID)
            return list(self.db.execute(stmt).scalars().all())

    def active_book_ids(self, book_ids: Iterable[int]) -> set[int]:
        wanted = list(book_ids)
        if not wanted:
            return set()
        with self._storage_guard("active_book_ids"):
            stmt = select(Rental.BookID).where(Rental.BookID.in_(wanted)).where(Rental.ReturnDate.is_(None))
            return set(self.db.execute(stmt).scalars().all())
