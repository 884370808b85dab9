from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session


def get_lending_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.lending_db.session()
    try:
        yield db
    finally:
        db.close()
