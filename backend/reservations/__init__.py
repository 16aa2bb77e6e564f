"""
Module 'reservations' (feature-first): point d'entrée public.
Réunit la machine à états, la disponibilité, le repository Supabase et le protocole de réconciliation.
"""

from .models import (
    Available,
    AvailabilityError,
    ConfirmationResult,
    ManualQuoteRequired,
    PaymentSessionError,
    PaymentVerificationFailure,
    Reservation,
    ReservationStatus,
    Submitted,
    Unavailable,
    can_transition,
)
from .availability import check_availability
from .expiry import expire_holds
from .service import (
    apply_payment_confirmation,
    cancel_reservation,
    confirm_payment,
    handle_payment_event,
    mark_confirmed,
    submit_reservation,
)
from .polling import ConfirmationPoller, PollingHandle, PollOutcome

__all__ = [
    # models
    "ReservationStatus",
    "Reservation",
    "can_transition",
    "Available",
    "Unavailable",
    "AvailabilityError",
    "ManualQuoteRequired",
    "PaymentSessionError",
    "PaymentVerificationFailure",
    "Submitted",
    "ConfirmationResult",
    # availability
    "check_availability",
    "expire_holds",
    # services
    "submit_reservation",
    "confirm_payment",
    "apply_payment_confirmation",
    "handle_payment_event",
    "cancel_reservation",
    "mark_confirmed",
    # polling
    "ConfirmationPoller",
    "PollingHandle",
    "PollOutcome",
]
