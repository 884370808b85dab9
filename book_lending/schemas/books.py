from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BookCreateDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    isbn13: str
    title: str
    author: str
    publishDate: date


class BookCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    isbn13: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    publishDate: Optional[date] = None

    def to_create_dto(self) -> Optional[BookCreateDto]:
        values = {
            "isbn13": (self.isbn13 or "").strip(),
            "title": (self.title or "").strip(),
            "author": (self.author or "").strip(),
        }
        if not all(values.values()) or self.publishDate is None:
            return None
        return BookCreateDto(publishDate=self.publishDate, **values)


class BookUpdateDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bookId: int
    isbn13: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    publishDate: Optional[date] = None
