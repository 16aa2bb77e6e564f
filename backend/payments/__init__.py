"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le client Stripe (Checkout, webhook) et la lecture des métadonnées d'acompte.
"""

from .stripe_client import (
    SESSION_EXPIRED,
    SESSION_PAID,
    SESSION_UNPAID,
    create_session,
    expire_session,
    get_session,
    get_session_status,
    parse_event,
    require_stripe,
    session_status,
)
from .metadata import extract_metadata, extract_reservation_ref, session_from_event

__all__ = [
    # stripe
    "require_stripe",
    "create_session",
    "get_session",
    "get_session_status",
    "session_status",
    "expire_session",
    "parse_event",
    "SESSION_PAID",
    "SESSION_UNPAID",
    "SESSION_EXPIRED",
    # metadata
    "extract_metadata",
    "extract_reservation_ref",
    "session_from_event",
]
