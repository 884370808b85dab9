import shutil
import tempfile
import threading
import unittest
from datetime import timedelta
from pathlib import Path

from book_lending.db.session import LendingDatabase
from book_lending.models.lending_models import Rental, User
from book_lending.services.outcomes import AlreadyReturned, Conflict, RentalReturned, RentalStarted
from book_lending.services.rental_service import AvailabilityGuard, ReturnProcessor
from book_lending.services.rental_store import RentalStore
from book_lending.tests.fixtures import ALICE_ID, BOB_ID, T0, seed_library


class ConcurrentRentalTests(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.database = LendingDatabase(f"sqlite:///{self.tmp_dir / 'lending.db'}").open()
        seed_library(self.database, book_ids=(5, 6, 7, 8, 9))

    def tearDown(self):
        self.database.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _run_concurrently(self, calls):
        barrier = threading.Barrier(len(calls))
        results = [None] * len(calls)
        errors = []

        def worker(index, call):
            db = self.database.session()
            try:
                barrier.wait()
                results[index] = call(RentalStore(db))
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)
            finally:
                db.close()

        threads = [threading.Thread(target=worker, args=(index, call)) for index, call in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        self.assertEqual(errors, [])
        return results

    def _active_count(self, book_id):
        with self.database.session() as db:
            return sum(1 for rental in RentalStore(db).list_by_book(book_id) if rental.is_active)

    def test_two_simultaneous_starts_yield_one_rental(self):
        for book_id in (5, 6, 7, 8, 9):
            results = self._run_concurrently(
                [
                    lambda store, book_id=book_id: AvailabilityGuard(store).start(book_id, ALICE_ID, T0),
                    lambda store, book_id=book_id: AvailabilityGuard(store).start(book_id, BOB_ID, T0),
                ]
            )
            started = [outcome for outcome in results if isinstance(outcome, RentalStarted)]
            conflicts = [outcome for outcome in results if isinstance(outcome, Conflict)]
            self.assertEqual(len(started), 1, results)
            self.assertEqual(conflicts, [Conflict(book_id)])
            self.assertEqual(self._active_count(book_id), 1)

    def test_many_callers_for_one_book(self):
        with self.database.session() as db:
            db.add_all([User(UserID=100 + index, Name=f"Reader {index}", IsAdmin=False) for index in range(8)])
            db.commit()

        results = self._run_concurrently(
            [
                lambda store, user_id=100 + index: AvailabilityGuard(store).start(5, user_id, T0)
                for index in range(8)
            ]
        )
        self.assertEqual(sum(isinstance(outcome, RentalStarted) for outcome in results), 1)
        self.assertEqual(sum(isinstance(outcome, Conflict) for outcome in results), 7)
        self.assertEqual(self._active_count(5), 1)

    def test_two_simultaneous_returns_yield_one_return(self):
        with self.database.session() as db:
            started = AvailabilityGuard(RentalStore(db)).start(5, ALICE_ID, T0)

        returned_at = T0 + timedelta(days=2)
        results = self._run_concurrently(
            [
                lambda store: ReturnProcessor(store).complete(started.id, ALICE_ID, returned_at),
                lambda store: ReturnProcessor(store).complete(started.id, ALICE_ID, returned_at),
            ]
        )
        self.assertEqual(sum(isinstance(outcome, RentalReturned) for outcome in results), 1)
        self.assertEqual(results.count(AlreadyReturned(started.id)), 1)

    def test_two_simultaneous_mark_returned_calls(self):
        with self.database.session() as db:
            started = AvailabilityGuard(RentalStore(db)).start(6, BOB_ID, T0)

        results = self._run_concurrently(
            [
                lambda store: store.mark_returned(started.id, T0 + timedelta(days=1)),
                lambda store: store.mark_returned(started.id, T0 + timedelta(days=1)),
            ]
        )
        self.assertEqual(sum(isinstance(outcome, Rental) for outcome in results), 1)
        self.assertEqual(results.count(AlreadyReturned(started.id)), 1)


if __name__ == "__main__":
    unittest.main()
