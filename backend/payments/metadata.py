"""
Lecture des métadonnées Stripe d'un acompte de réservation (type, reservation_id).
"""
from typing import Any, Dict, Optional, Tuple

from backend.payments.stripe_client import RESERVATION_PAYMENT_TYPE


def as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict_recursive", None) or getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    try:
        return dict(obj or {})
    except (TypeError, ValueError):
        return {}


# module backend.payments.metadata
def session_from_event(event: Any) -> Dict[str, Any]:
    """Retourne event.data.object (la session Checkout) sous forme de dict."""
    data = as_dict(event).get("data") or {}
    return as_dict(as_dict(data).get("object"))


def extract_reservation_ref(session: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """
    Extrait (reservation_id, session_ref) depuis une session Stripe Checkout.
    - Ignore les sessions d'un autre type (reservation_id=None).
    - client_reference_id sert de repli si metadata.reservation_id est absent.
    """
    session = as_dict(session)
    meta = as_dict(session.get("metadata"))
    if meta.get("type") not in (None, "", RESERVATION_PAYMENT_TYPE):
        return None, session.get("id")
    reservation_id = meta.get("reservation_id") or session.get("client_reference_id")
    return (str(reservation_id) if reservation_id else None), session.get("id")


def extract_metadata(event: Any) -> Tuple[Optional[str], Optional[str]]:
    """(reservation_id, session_ref) depuis un event Stripe (webhook)."""
    return extract_reservation_ref(session_from_event(event))
