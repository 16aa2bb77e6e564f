"""
Transitions de la machine à états des réservations.
Une transition n'est appliquée qu'une fois: la garde locale (table TRANSITIONS) puis
le compare-and-swap côté base. Perdre la course n'est pas une erreur.
"""
import logging
from typing import Any, Dict, Optional

from backend.reservations import repository
from backend.reservations.models import ReservationStatus, can_transition

logger = logging.getLogger(__name__)


class TransitionRefused(Exception):
    """Transition absente de la table TRANSITIONS (bug appelant, pas une course)."""

    def __init__(self, current: ReservationStatus, target: ReservationStatus):
        super().__init__(f"Transition interdite {current.value} -> {target.value}")
        self.current = current
        self.target = target


# module backend.reservations.state_machine
def apply_transition(
    reservation_id: str,
    current: ReservationStatus,
    target: ReservationStatus,
    *,
    session_ref: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """
    Applique current -> target par compare-and-swap.
    - Lève TransitionRefused si la transition n'est pas autorisée.
    - Retourne la ligne mise à jour, ou None si un autre acteur a déjà fait évoluer le statut.
    """
    if not can_transition(current, target):
        raise TransitionRefused(current, target)
    row = repository.update_reservation_status(
        reservation_id,
        target.value,
        current.value,
        session_ref=session_ref,
        extra=extra,
    )
    if row is None:
        logger.info(
            "reservations.state_machine.apply_transition no-op id=%s %s->%s",
            reservation_id,
            current.value,
            target.value,
        )
    return row
