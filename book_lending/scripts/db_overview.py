#!/usr/bin/env python3
"""Database overview and rental integrity checks for the lending service."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, inspect, select, text
from sqlalchemy.engine import Engine

from book_lending.db.session import create_lending_engine
from book_lending.models.lending_models import Book, Rental, User
from book_lending.services.deadline import compute_deadline

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "Books": ["BookID", "Isbn13", "Title", "Author", "PublishDate"],
    "Users": ["UserID", "Name", "IsAdmin"],
    "Rental": ["RentalID", "BookID", "UserID", "RentalDate", "ReturnDeadline", "ReturnDate"],
}
EXPECTED_TABLES = list(EXPECTED_COLUMNS)

rental_table = Rental.__table__


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _table_names(engine: Engine) -> set[str]:
    return set(inspect(engine).get_table_names())


def run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_column_checks(engine: Engine) -> list[CheckResult]:
    present = _table_names(engine)
    inspector = inspect(engine)
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in present:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = {column["name"] for column in inspector.get_columns(table)}
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    if "Rental" not in _table_names(engine):
        return [CheckResult("rental:table", False, "table missing")]

    checks: list[CheckResult] = []
    with engine.connect() as conn:
        books_on_double_loan = conn.execute(
            select(rental_table.c.BookID)
            .where(rental_table.c.ReturnDate.is_(None))
            .group_by(rental_table.c.BookID)
            .having(func.count() > 1)
        ).scalars().all()
        checks.append(
            CheckResult(
                "rental:multiple_active_per_book",
                not books_on_double_loan,
                f"count={len(books_on_double_loan)}"
                + (f" books={','.join(str(book_id) for book_id in books_on_double_loan)}" if books_on_double_loan else ""),
            )
        )

        rows = conn.execute(
            select(
                rental_table.c.RentalID,
                rental_table.c.RentalDate,
                rental_table.c.ReturnDeadline,
                rental_table.c.ReturnDate,
            )
        ).all()

    bad_deadline = [row.RentalID for row in rows if row.ReturnDeadline != compute_deadline(row.RentalDate)]
    checks.append(
        CheckResult("rental:deadline_mismatch", not bad_deadline, f"count={len(bad_deadline)}")
    )

    early_return = [row.RentalID for row in rows if row.ReturnDate is not None and row.ReturnDate < row.RentalDate]
    checks.append(
        CheckResult("rental:return_before_rental", not early_return, f"count={len(early_return)}")
    )
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    present = _table_names(engine)
    with engine.connect() as conn:
        for model in (Book, User, Rental):
            table = model.__table__
            if table.name not in present:
                print(f"{table.name}: missing")
                continue
            count = conn.execute(select(func.count()).select_from(table)).scalar()
            print(f"{table.name}: {int(count or 0)}")
        if "Rental" in present:
            active = conn.execute(
                select(func.count()).select_from(rental_table).where(rental_table.c.ReturnDate.is_(None))
            ).scalar()
            print(f"Rental (active): {int(active or 0)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Lending DB overview")
    parser.add_argument("--db-url", default=os.environ.get("LENDING_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("LENDING_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = create_lending_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    try:
        results = run_existence_checks(engine) + run_column_checks(engine) + run_integrity_checks(engine)
        _print_results("Checks", results)
        _print_row_counts(engine)
    finally:
        engine.dispose()
    return 0 if all(result.ok for result in results) else 1


if __name__ == "__main__":
    sys.exit(main())
