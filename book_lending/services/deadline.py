from __future__ import annotations

from datetime import datetime, timedelta

RENTAL_PERIOD_DAYS = 7


def compute_deadline(rental_date: datetime) -> datetime:
    """Return the deadline for a rental started at ``rental_date``.

    The period is counted in calendar days: the wall-clock time is kept and
    only the date moves. Rentals pass the stored (naive UTC) rental date, so
    the stored deadline is always exactly seven days later.
    """
    return rental_date + timedelta(days=RENTAL_PERIOD_DAYS)
