from datetime import date, datetime

from book_lending.db.session import LendingDatabase
from book_lending.models.lending_models import Book, User

T0 = datetime(2024, 1, 1, 0, 0, 0)
MEMORY_DB_URL = "sqlite+pysqlite:///:memory:"
TEST_SESSION_SECRET = "x" * 48

ADMIN_ID = 1
ALICE_ID = 7
BOB_ID = 9


def open_memory_database() -> LendingDatabase:
    return LendingDatabase(MEMORY_DB_URL).open()


def seed_library(database: LendingDatabase, book_ids=(5, 42)) -> None:
    with database.session() as db:
        db.add_all(
            [
                User(UserID=ADMIN_ID, Name="Admin", Email="admin@example.com", IsAdmin=True),
                User(UserID=ALICE_ID, Name="Alice", Email="alice@example.com", IsAdmin=False),
                User(UserID=BOB_ID, Name="Bob", Email="bob@example.com", IsAdmin=False),
            ]
        )
        for book_id in book_ids:
            db.add(
                Book(
                    BookID=book_id,
                    Isbn13=f"978000000{book_id:04d}",
                    Title=f"Book {book_id}",
                    Author="Some Author",
                    PublishDate=date(2001, 1, 1),
                )
            )
        db.commit()
