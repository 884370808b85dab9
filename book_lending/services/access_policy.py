from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("book_lending.access")


class AccessDenied(Exception):
    status_code = 403


class Unauthenticated(AccessDenied):
    status_code = 401

    def __init__(self, message: str = "unauthenticated") -> None:
        super().__init__(message)


class Forbidden(AccessDenied):
    status_code = 403

    def __init__(self, message: str = "admin role required") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Caller:
    user_id: int
    is_admin: bool = False


def caller_from_session(session: dict[str, Any] | None) -> Caller | None:
    """Build a caller from a session payload; anything malformed is anonymous."""
    if not isinstance(session, dict):
        return None
    try:
        user_id = int(session.get("userID") or 0)
    except (TypeError, ValueError):
        return None
    if user_id <= 0:
        return None
    return Caller(user_id=user_id, is_admin=session.get("isAdmin") is True)


def require_user(caller: Caller | None) -> Caller:
    if caller is None:
        logger.warning("Anonymous caller refused")
        raise Unauthenticated()
    return caller


def require_admin(caller: Caller | None) -> Caller:
    caller = require_user(caller)
    if not caller.is_admin:
        logger.warning("User %s refused admin operation", caller.user_id)
        raise Forbidden()
    return caller
