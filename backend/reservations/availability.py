"""
Vérification de disponibilité d'un créneau pour une famille de packs.
"""
import logging
from datetime import datetime
from typing import Optional, Union

from backend.catalogue.packs import pool_capacity
from backend.reservations import repository
from backend.reservations.expiry import expire_holds
from backend.reservations.models import (
    BLOCKING_STATUSES,
    SLOT_BOOKED,
    SLOT_HELD,
    Available,
    ReservationStatus,
    Unavailable,
)
from backend.utils.timespan import Span, parse_datetime, utcnow

logger = logging.getLogger(__name__)

# Lecture impossible: on ne conclut jamais à un créneau libre
CHECK_FAILED = "CHECK_FAILED"


# module backend.reservations.availability
def _is_blocking(row: dict, now: datetime) -> bool:
    status = ReservationStatus.parse(row.get("status"))
    if status not in BLOCKING_STATUSES:
        return False
    if status == ReservationStatus.AWAITING_PAYMENT:
        expires = parse_datetime(row.get("hold_expires_at"))
        return expires is not None and expires > now
    return True


def check_availability(
    span: Span,
    package_family: str,
    now: Optional[datetime] = None,
) -> Union[Available, Unavailable]:
    """
    [start, end) contre les réservations PAID/CONFIRMED et les holds non expirés du même pack.
    Unavailable dès que le nombre de chevauchements atteint la capacité du pool.
    """
    now = now or utcnow()
    expire_holds(now)
    rows = repository.query_overlapping(span, package_family, [s.value for s in BLOCKING_STATUSES])
    if rows is None:
        return Unavailable(reason=CHECK_FAILED)

    blocking = [r for r in rows if _is_blocking(r, now)]
    if len(blocking) < pool_capacity(package_family):
        return Available()

    booked = any(ReservationStatus.parse(r.get("status")) != ReservationStatus.AWAITING_PAYMENT for r in blocking)
    reason = SLOT_BOOKED if booked else SLOT_HELD
    logger.info(
        "reservations.availability.check_availability unavailable pack=%s reason=%s conflicts=%s",
        package_family,
        reason,
        len(blocking),
    )
    return Unavailable(reason=reason, conflicts=len(blocking))
