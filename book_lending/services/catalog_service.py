from __future__ import annotations

import math
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from book_lending.models.lending_models import Book
from book_lending.schemas.books import BookCreateDto, BookUpdateDto
from book_lending.services.rental_store import RentalStore

BOOKS_PER_PAGE = 10


def serialize_book(book: Book) -> dict:
    return {
        "id": book.BookID,
        "isbn13": book.Isbn13,
        "title": book.Title,
        "author": book.Author,
        "publishDate": book.PublishDate,
    }


def _parse_page(raw: int | str | None) -> int:
    try:
        page = int(raw or 1)
    except (TypeError, ValueError):
        return 1
    return max(1, page)


def list_books(db: Session, page: int | str | None = 1, limit: int = BOOKS_PER_PAGE) -> dict:
    page = _parse_page(page)
    total = db.execute(select(func.count(Book.BookID))).scalar_one()
    books = db.execute(
        select(Book).order_by(Book.BookID).offset((page - 1) * limit).limit(limit)
    ).scalars().all()

    on_loan = RentalStore(db).active_book_ids(book.BookID for book in books)
    return {
        "books": [
            {
                "id": book.BookID,
                "title": book.Title,
                "author": book.Author,
                "isRental": book.BookID in on_loan,
            }
            for book in books
        ],
        "maxPage": math.ceil(total / limit),
    }


def get_book_detail(db: Session, book_id: int) -> dict | None:
    book = db.get(Book, book_id)
    if book is None:
        return None
    payload = serialize_book(book)
    active = RentalStore(db).find_active_by_book(book_id)
    if active is not None:
        payload["rentalInfo"] = {
            "userName": active.User.Name if active.User else None,
            "rentalDate": active.RentalDate,
            "returnDeadline": active.ReturnDeadline,
        }
    return payload


def create_book(db: Session, payload: BookCreateDto) -> Book:
    book = Book(
        Isbn13=payload.isbn13,
        Title=payload.title,
        Author=payload.author,
        PublishDate=payload.publishDate,
    )
    db.add(book)
    db.commit()
    return book


def update_book(db: Session, payload: BookUpdateDto) -> Book | None:
    book = db.get(Book, payload.bookId)
    if book is None:
        return None
    if payload.isbn13 is not None:
        book.Isbn13 = payload.isbn13
    if payload.title is not None:
        book.Title = payload.title
    if payload.author is not None:
        book.Author = payload.author
    if payload.publishDate is not None:
        book.PublishDate = payload.publishDate
    book.UpdatedDate = datetime.now()
    db.commit()
    return book
