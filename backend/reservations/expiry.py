"""
Expiration des holds AWAITING_PAYMENT non payés à temps.
Appelée avant chaque lecture de disponibilité: un hold expiré libère son créneau.
Un hold échu porteur d'une session Stripe n'est expiré qu'après lecture de la session:
- payée: AWAITING_PAYMENT -> PAID (webhook en retard), le créneau reste pris
- Stripe injoignable: le hold est conservé jusqu'au prochain passage
"""
import logging
from datetime import datetime
from typing import Optional

from backend.payments import stripe_client
from backend.reservations import repository
from backend.reservations.models import ReservationStatus
from backend.reservations.repository import RepositoryError
from backend.reservations.state_machine import apply_transition
from backend.utils.timespan import utcnow

logger = logging.getLogger(__name__)


# module backend.reservations.expiry
def _settled_at_provider(row: dict) -> Optional[bool]:
    """True si Stripe a encaissé la session, False sinon, None si la lecture échoue."""
    session_ref = row.get("stripe_session_id")
    if not session_ref:
        return False
    try:
        return stripe_client.get_session_status(session_ref) == stripe_client.SESSION_PAID
    except Exception:
        logger.exception("reservations.expiry.provider check failed id=%s session=%s", row.get("id"), session_ref)
        return None


def expire_holds(now: Optional[datetime] = None) -> int:
    """Passe en EXPIRED les holds échus non payés; retourne le nombre de transitions gagnées."""
    # Import local: service dépend de availability, qui dépend de ce module
    from backend.reservations import service as reservations_service

    now = now or utcnow()
    expired = 0
    for row in repository.list_expired_holds(now):
        paid = _settled_at_provider(row)
        if paid is None:
            continue
        try:
            if paid:
                reservations_service.apply_payment_confirmation(
                    row["id"], row.get("stripe_session_id"), source="expiry"
                )
                continue
            if apply_transition(
                row["id"],
                ReservationStatus.AWAITING_PAYMENT,
                ReservationStatus.EXPIRED,
                session_ref=row.get("stripe_session_id"),
            ):
                expired += 1
        except RepositoryError:
            # Hold conservé: il bloque encore le créneau et sera retraité au prochain passage
            continue
    if expired:
        logger.info("reservations.expiry.expire_holds expired=%s", expired)
    return expired
