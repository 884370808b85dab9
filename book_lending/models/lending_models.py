import enum

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from book_lending.db.base import Base


class RentalState(str, enum.Enum):
    ACTIVE = "Active"
    RETURNED = "Returned"


class Book(Base):
    __tablename__ = "Books"

    BookID = Column(Integer, primary_key=True)
    Isbn13 = Column(String(13), nullable=False)
    Title = Column(String(255), nullable=False)
    Author = Column(String(255), nullable=False)
    PublishDate = Column(Date, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Rentals = relationship("Rental", back_populates="Book")


class User(Base):
    __tablename__ = "Users"

    UserID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    Email = Column(String(255))
    IsAdmin = Column(Boolean, nullable=False, default=False)
    CreatedDate = Column(DateTime, server_default=func.now())

    Rentals = relationship("Rental", back_populates="User")


class Rental(Base):
    __tablename__ = "Rental"

    RentalID = Column(Integer, primary_key=True)
    BookID = Column(Integer, ForeignKey("Books.BookID"), nullable=False)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    RentalDate = Column(DateTime, nullable=False)
    ReturnDeadline = Column(DateTime, nullable=False)
    ReturnDate = Column(DateTime)

    Book = relationship("Book", back_populates="Rentals")
    User = relationship("User", back_populates="Rentals")

    @property
    def state(self) -> RentalState:
        return RentalState.ACTIVE if self.ReturnDate is None else RentalState.RETURNED

    @property
    def is_active(self) -> bool:
        return self.state is RentalState.ACTIVE


# At most one unreturned rental per book; concurrent inserts race on this index.
Index(
    "UX_Rental_ActiveBook",
    Rental.BookID,
    unique=True,
    sqlite_where=Rental.ReturnDate.is_(None),
    postgresql_where=Rental.ReturnDate.is_(None),
)
Index("IX_Rental_UserID", Rental.UserID)
