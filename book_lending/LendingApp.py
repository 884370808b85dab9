import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from book_lending.config import Settings, load_settings
from book_lending.db.deps import get_lending_db
from book_lending.db.session import LendingDatabase
from book_lending.models.lending_models import User
from book_lending.schemas.books import BookCreateRequest, BookUpdateDto
from book_lending.schemas.rentals import ReturnRentalRequest, StartRentalRequest
from book_lending.services.access_policy import AccessDenied, Caller, caller_from_session, require_admin, require_user
from book_lending.services.catalog_service import create_book, get_book_detail, list_books, update_book
from book_lending.services.clock import SystemClock
from book_lending.services.outcomes import AlreadyReturned, Conflict, NotFound, StorageFailure
from book_lending.services.rental_service import (
    AvailabilityGuard,
    ReturnProcessor,
    serialize_admin_rental,
    serialize_current_rental,
    serialize_history_rental,
    serialize_started,
)
from book_lending.services.rental_store import RentalStore
from book_lending.services.session_service import SessionTokens

APP_LOGGER = logging.getLogger("book_lending.app")
SESSION_COOKIE = "book_lending_session"

router = APIRouter()


def _ng(status_code: int, result: str = "NG") -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"result": result})


def get_caller(
    request: Request,
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
) -> Caller | None:
    sessions = request.app.state.sessions
    caller = caller_from_session(sessions.get_session(x_session_token))
    if caller is not None:
        # The cookie carries the token itself so revocation covers both paths.
        request.session["token"] = x_session_token
        return caller
    return caller_from_session(sessions.get_session(request.session.get("token")))


def require_user_caller(caller: Caller | None = Depends(get_caller)) -> Caller:
    return require_user(caller)


def require_admin_caller(caller: Caller | None = Depends(get_caller)) -> Caller:
    return require_admin(caller)


@router.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@router.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_lending_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@router.get("/user/check")
def user_check(caller: Caller = Depends(require_user_caller)):
    return {"message": "OK", "isAdmin": caller.is_admin}


@router.api_route("/user/logout", methods=["GET", "POST"])
def user_logout(request: Request, x_session_token: str | None = Header(None, alias="X-Session-Token")):
    sessions = request.app.state.sessions
    sessions.remove_session(x_session_token)
    sessions.remove_session(request.session.pop("token", None))
    return {"result": "OK"}


@router.post("/rental/start", status_code=201)
def start_rental(
    request: Request,
    payload: StartRentalRequest,
    caller: Caller = Depends(require_user_caller),
    db: Session = Depends(get_lending_db),
):
    guard = AvailabilityGuard(RentalStore(db))
    outcome = guard.start(payload.bookId, caller.user_id, request.app.state.clock.now())
    if isinstance(outcome, Conflict):
        return _ng(409, "NG (currently on loan)")
    if isinstance(outcome, NotFound):
        return _ng(404, f"NG ({outcome.entity} not found)")
    return serialize_started(outcome)


@router.put("/rental/return")
def return_rental(
    request: Request,
    payload: ReturnRentalRequest,
    caller: Caller = Depends(require_user_caller),
    db: Session = Depends(get_lending_db),
):
    if not payload.rentalId:
        return _ng(400, "NG (not exist)")
    processor = ReturnProcessor(RentalStore(db))
    outcome = processor.complete(payload.rentalId, caller.user_id, request.app.state.clock.now())
    if isinstance(outcome, NotFound):
        return _ng(400, "NG (unauthenticated)")
    if isinstance(outcome, AlreadyReturned):
        return _ng(400, "NG (Returned)")
    return {"result": "OK (Returned)"}


@router.get("/rental/current")
def current_rentals(caller: Caller = Depends(require_user_caller), db: Session = Depends(get_lending_db)):
    rentals = RentalStore(db).list_active_by_user(caller.user_id)
    return {"rentalBooks": [serialize_current_rental(rental) for rental in rentals]}


@router.get("/rental/history")
def rental_history(caller: Caller = Depends(require_user_caller), db: Session = Depends(get_lending_db)):
    rentals = RentalStore(db).list_history_by_user(caller.user_id)
    return {"rentalHistory": [serialize_history_rental(rental) for rental in rentals]}


@router.get("/admin/rental/current")
def admin_current_rentals(_: Caller = Depends(require_admin_caller), db: Session = Depends(get_lending_db)):
    rentals = RentalStore(db).list_active()
    return {"rentalBooks": [serialize_admin_rental(rental) for rental in rentals]}


@router.get("/admin/rental/current/{uid}")
def admin_user_rentals(uid: int, _: Caller = Depends(require_admin_caller), db: Session = Depends(get_lending_db)):
    rentals = RentalStore(db).list_active_by_user(uid)
    if not rentals:
        return _ng(404, "NG (not found)")
    user = db.get(User, uid)
    return {
        "userId": uid,
        "userName": user.Name if user else None,
        "rentalBooks": [serialize_current_rental(rental) for rental in rentals],
    }


@router.get("/book/list")
def book_list(
    page: str | None = Query(None),
    _: Caller = Depends(require_user_caller),
    db: Session = Depends(get_lending_db),
):
    return list_books(db, page)


@router.get("/book/detail/{book_id}")
def book_detail(book_id: int, _: Caller = Depends(require_user_caller), db: Session = Depends(get_lending_db)):
    detail = get_book_detail(db, book_id)
    if detail is None:
        return JSONResponse(status_code=404, content={"message": "Book not found"})
    return detail


@router.post("/admin/book/create", status_code=201)
def admin_create_book(
    payload: BookCreateRequest,
    caller: Caller = Depends(require_admin_caller),
    db: Session = Depends(get_lending_db),
):
    create_payload = payload.to_create_dto()
    if create_payload is None:
        return _ng(400)
    book = create_book(db, create_payload)
    APP_LOGGER.info("Book %s created by admin %s", book.BookID, caller.user_id)
    return {"result": "OK"}


@router.put("/admin/book/update")
def admin_update_book(
    payload: BookUpdateDto,
    caller: Caller = Depends(require_admin_caller),
    db: Session = Depends(get_lending_db),
):
    book = update_book(db, payload)
    if book is None:
        return _ng(400)
    APP_LOGGER.info("Book %s updated by admin %s", book.BookID, caller.user_id)
    return {"result": "OK"}


def _access_denied_handler(request: Request, exc: AccessDenied) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"result": "NG"})


def _storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
    APP_LOGGER.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _ng(500)


def create_app(
    settings: Settings | None = None,
    database: LendingDatabase | None = None,
    clock=None,
) -> FastAPI:
    settings = settings or load_settings()
    database = database or LendingDatabase(settings.db_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        try:
            yield
        finally:
            database.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.lending_db = database
    app.state.clock = clock or SystemClock()
    app.state.sessions = SessionTokens(settings.session_secret, settings.session_ttl_seconds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE,
        max_age=settings.session_ttl_seconds,
        same_site="lax",
        https_only=False,
    )
    app.add_exception_handler(AccessDenied, _access_denied_handler)
    app.add_exception_handler(StorageFailure, _storage_failure_handler)
    app.include_router(router)
    return app


app = create_app()
