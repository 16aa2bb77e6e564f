"""
Cas d'usage 'reservations': orchestre devis, disponibilité, Stripe et la machine à états.

- submit_reservation: seul point d'entrée qui vérifie la disponibilité et crée un enregistrement
- apply_payment_confirmation: transition AWAITING_PAYMENT -> PAID unique et idempotente,
  partagée par le webhook Stripe et la vérification à la demande (confirm_payment)
- Les issues métier (créneau pris, devis manuel, paiement non vérifiable) sont des valeurs typées
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from email_validator import EmailNotValidError, validate_email

from backend.config import (
    BASE_URL,
    CHECKOUT_CANCEL_PATH,
    CHECKOUT_SUCCESS_PATH,
    HOLD_GRACE_SECONDS,
    HOLD_TTL_MINUTES,
    STRIPE_CURRENCY,
)
from backend.payments import metadata as payments_metadata
from backend.payments import stripe_client
from backend.pricing.quote import Quote
from backend.reservations import repository
from backend.reservations.repository import RepositoryError
from backend.reservations.availability import check_availability
from backend.reservations.models import (
    SETTLED_STATUSES,
    TERMINAL_STATUSES,
    AvailabilityError,
    ConfirmationResult,
    ManualQuoteRequired,
    PaymentSessionError,
    PaymentVerificationFailure,
    Reservation,
    ReservationStatus,
    Submitted,
    Unavailable,
)
from backend.reservations.state_machine import apply_transition
from backend.utils.errors import ValidationError
from backend.utils.timespan import to_utc_iso, utcnow

logger = logging.getLogger(__name__)

SubmissionResult = Union[Submitted, AvailabilityError, ManualQuoteRequired, PaymentSessionError]

# Nombre de relectures quand une annulation perd la course face à une autre transition
_CANCEL_RETRIES = 3


# module backend.reservations.service
def _validate_email(contact_email: Optional[str]) -> str:
    try:
        checked = validate_email((contact_email or "").strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError("Adresse e-mail de contact invalide", code="invalid_email")
    return checked.normalized.lower()


def _checkout_urls(reservation_id: str) -> Dict[str, str]:
    success = f"{BASE_URL}{CHECKOUT_SUCCESS_PATH}?reservation_id={reservation_id}&session_id={{CHECKOUT_SESSION_ID}}"
    cancel = f"{BASE_URL}{CHECKOUT_CANCEL_PATH}?reservation_id={reservation_id}"
    return {"success_url": success, "cancel_url": cancel}


def _reservation_record(
    reservation_id: str,
    quote: Quote,
    email: str,
    session_ref: str,
    hold_expires_at: datetime,
) -> Dict[str, Any]:
    return {
        "id": reservation_id,
        "pack_key": quote.package_key,
        "tier": quote.tier,
        "headcount": quote.headcount,
        "start_at": to_utc_iso(quote.span.start),
        "end_at": to_utc_iso(quote.span.end),
        "zone": quote.zone.value,
        "city": quote.city,
        "postal_code": quote.postal_code,
        "price_total": quote.total,
        "deposit_amount": quote.deposit,
        "balance_amount": quote.balance,
        "caution_amount": quote.caution,
        "customer_email": email,
        "status": ReservationStatus.AWAITING_PAYMENT.value,
        "stripe_session_id": session_ref,
        "hold_expires_at": to_utc_iso(hold_expires_at),
    }


def submit_reservation(quote: Quote, contact_email: str, now: Optional[datetime] = None) -> SubmissionResult:
    """
    Soumet un devis: revalide la disponibilité, ouvre la session Stripe puis persiste
    la réservation directement en AWAITING_PAYMENT avec sa référence de session.

    Ordre des opérations:
      1) validations locales (e-mail) -> ValidationError
      2) devis manuel (hors zone, effectif hors grille) -> ManualQuoteRequired, aucun appel externe
      3) check_availability re-exécuté ici -> AvailabilityError, aucun enregistrement
      4) session Stripe (metadata.reservation_id pré-généré) -> PaymentSessionError si échec
      5) insertion; si elle échoue la session est expirée (best effort) -> PaymentSessionError
    """
    email = _validate_email(contact_email)
    if quote.requires_manual_quote or quote.deposit is None:
        return ManualQuoteRequired(reasons=tuple(quote.manual_quote_reasons))

    now = now or utcnow()
    availability = check_availability(quote.span, quote.package_key, now)
    if isinstance(availability, Unavailable):
        return AvailabilityError(reason=availability.reason)

    reservation_id = str(uuid4())
    session_expires_at = now + timedelta(minutes=HOLD_TTL_MINUTES)
    # Le hold expire HOLD_GRACE_SECONDS après la session Checkout
    hold_expires_at = session_expires_at + timedelta(seconds=HOLD_GRACE_SECONDS)
    try:
        session = stripe_client.create_session(
            amount=quote.deposit,
            reservation_id=reservation_id,
            customer_email=email,
            expires_at=session_expires_at,
            description=f"Acompte réservation {quote.package_key} ({quote.tier})",
            **_checkout_urls(reservation_id),
        )
    except Exception:
        logger.exception("reservations.service.submit_reservation stripe session failed id=%s", reservation_id)
        return PaymentSessionError()

    session_ref = session.get("session_ref")
    redirect_url = session.get("redirect_url")
    if not session_ref or not redirect_url:
        logger.error("reservations.service.submit_reservation invalid session id=%s", reservation_id)
        stripe_client.expire_session(session_ref)
        return PaymentSessionError()

    record = _reservation_record(reservation_id, quote, email, session_ref, hold_expires_at)
    row = repository.create_reservation(record)
    if row is None:
        stripe_client.expire_session(session_ref)
        return PaymentSessionError(message="Impossible d'enregistrer la réservation, veuillez réessayer.")

    logger.info(
        "reservations.service.submit_reservation id=%s pack=%s tier=%s deposit=%s",
        reservation_id,
        quote.package_key,
        quote.tier,
        quote.deposit,
    )
    return Submitted(reservation=Reservation.from_row({**record, **row}), redirect_url=redirect_url)


def get_reservation(reservation_id: str) -> Optional[Reservation]:
    row = repository.get_reservation(reservation_id)
    return Reservation.from_row(row) if row else None


def get_status(reservation_id: str) -> Optional[Dict[str, Any]]:
    """Instantané léger pour le polling: {id, status, has_session}."""
    row = repository.get_reservation_status(reservation_id)
    if not row:
        return None
    return {
        "id": str(row.get("id") or reservation_id),
        "status": ReservationStatus.parse(row.get("status")).value,
        "has_session": bool(row.get("stripe_session_id")),
    }


def _current_status(reservation_id: str) -> Optional[ReservationStatus]:
    snapshot = get_status(reservation_id)
    return ReservationStatus(snapshot["status"]) if snapshot else None


def _record_confirmation(reservation: Reservation, source: str) -> None:
    """Effets de bord d'un paiement confirmé: exécutés uniquement par la transition gagnante."""
    ledger = repository.insert_deposit_payment(
        reservation_id=reservation.id,
        session_ref=reservation.payment_session_ref,
        amount=reservation.deposit,
        currency=STRIPE_CURRENCY,
        source=source,
    )
    if ledger is None:
        logger.error("reservations.service.record_confirmation ledger insert failed id=%s", reservation.id)
    logger.info(
        "reservations.service.payment_confirmed id=%s deposit=%s source=%s email=%s",
        reservation.id,
        reservation.deposit,
        source,
        reservation.customer_email,
    )


def apply_payment_confirmation(
    reservation_id: str,
    session_ref: Optional[str] = None,
    source: str = "verify",
) -> ConfirmationResult:
    """
    Transition AWAITING_PAYMENT -> PAID, idempotente.
    - Déjà PAID/CONFIRMED: no-op (changed=False)
    - EXPIRED/CANCELLED: no-op, journalisé (paiement tardif à traiter manuellement)
    - session_ref différente de celle de la réservation: ignoré
    - Course perdue au compare-and-swap: no-op, statut relu
    """
    row = repository.get_reservation(reservation_id)
    if not row:
        logger.warning("reservations.service.apply_payment_confirmation unknown id=%s", reservation_id)
        return ConfirmationResult(status=None)

    reservation = Reservation.from_row(row)
    if reservation.status in SETTLED_STATUSES:
        return ConfirmationResult(status=reservation.status)
    if reservation.status != ReservationStatus.AWAITING_PAYMENT:
        logger.warning(
            "reservations.service.apply_payment_confirmation late payment id=%s status=%s session=%s",
            reservation_id,
            reservation.status.value,
            session_ref,
        )
        return ConfirmationResult(status=reservation.status)
    if session_ref and reservation.payment_session_ref and session_ref != reservation.payment_session_ref:
        logger.warning(
            "reservations.service.apply_payment_confirmation session mismatch id=%s expected=%s got=%s",
            reservation_id,
            reservation.payment_session_ref,
            session_ref,
        )
        return ConfirmationResult(status=reservation.status)

    updated = apply_transition(
        reservation_id,
        ReservationStatus.AWAITING_PAYMENT,
        ReservationStatus.PAID,
        session_ref=reservation.payment_session_ref,
        extra={"paid_at": to_utc_iso(utcnow())},
    )
    if updated is None:
        return ConfirmationResult(status=_current_status(reservation_id))

    _record_confirmation(reservation, source)
    return ConfirmationResult(status=ReservationStatus.PAID, changed=True)


_VERIFICATION_FAILED = "Vérification du paiement impossible pour le moment"


def confirm_payment(reservation_id: str) -> ConfirmationResult:
    """
    Vérification à la demande auprès de Stripe (repli du polling).
    - Statut déjà résolu ou sans session: retourne le statut stocké sans appel externe
    - Erreur Stripe/réseau ou écriture Supabase en échec:
      ConfirmationResult(error=PaymentVerificationFailure), jamais PAID ni CANCELLED
    - Session payée: apply_payment_confirmation (même fonction que le webhook)
    - Session expirée: AWAITING_PAYMENT -> EXPIRED
    """
    try:
        row = repository.get_reservation(reservation_id)
    except RepositoryError:
        return ConfirmationResult(status=None, error=PaymentVerificationFailure(message=_VERIFICATION_FAILED))
    if not row:
        return ConfirmationResult(status=None)
    reservation = Reservation.from_row(row)
    if reservation.status != ReservationStatus.AWAITING_PAYMENT or not reservation.payment_session_ref:
        return ConfirmationResult(status=reservation.status)

    try:
        provider_status = stripe_client.get_session_status(reservation.payment_session_ref)
    except Exception:
        logger.exception(
            "reservations.service.confirm_payment verification failed id=%s session=%s",
            reservation_id,
            reservation.payment_session_ref,
        )
        return ConfirmationResult(
            status=reservation.status,
            error=PaymentVerificationFailure(message=_VERIFICATION_FAILED),
        )

    try:
        if provider_status == stripe_client.SESSION_PAID:
            return apply_payment_confirmation(reservation_id, reservation.payment_session_ref, source="verify")
        if provider_status == stripe_client.SESSION_EXPIRED:
            updated = apply_transition(
                reservation_id,
                ReservationStatus.AWAITING_PAYMENT,
                ReservationStatus.EXPIRED,
                session_ref=reservation.payment_session_ref,
            )
            if updated is None:
                return ConfirmationResult(status=_current_status(reservation_id))
            return ConfirmationResult(status=ReservationStatus.EXPIRED, changed=True)
    except RepositoryError:
        # Le paiement est peut-être acquis chez Stripe: le client doit revérifier
        logger.error(
            "reservations.service.confirm_payment write failed id=%s provider_status=%s",
            reservation_id,
            provider_status,
        )
        return ConfirmationResult(
            status=reservation.status,
            error=PaymentVerificationFailure(message=_VERIFICATION_FAILED),
        )
    return ConfirmationResult(status=reservation.status)


_PAID_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


def handle_payment_event(event: Any) -> Dict[str, Any]:
    """
    Webhook Stripe: route un événement Checkout vers la machine à états.
    Retour: {"status": "ok", "reservation_id", "changed", "reservation_status"} ou {"status": "ignored", "reason"}
    RepositoryError n'est pas interceptée: la vue répond 500 et Stripe relivre l'événement.
    """
    event_type = (payments_metadata.as_dict(event) or {}).get("type")
    session = payments_metadata.session_from_event(event)
    reservation_id, session_ref = payments_metadata.extract_reservation_ref(session)
    if not reservation_id:
        return {"status": "ignored", "reason": "not_a_reservation"}

    if event_type in _PAID_EVENTS:
        if stripe_client.session_status(session) != stripe_client.SESSION_PAID:
            # Paiement différé (virement, etc.): attendre async_payment_succeeded
            return {"status": "ignored", "reason": "payment_pending"}
        result = apply_payment_confirmation(reservation_id, session_ref, source="webhook")
    elif event_type == "checkout.session.expired":
        updated = apply_transition(
            reservation_id,
            ReservationStatus.AWAITING_PAYMENT,
            ReservationStatus.EXPIRED,
            session_ref=session_ref,
        )
        status = ReservationStatus.EXPIRED if updated else _current_status(reservation_id)
        result = ConfirmationResult(status=status, changed=updated is not None)
    else:
        return {"status": "ignored", "reason": "unhandled_event"}

    logger.info(
        "reservations.service.handle_payment_event type=%s id=%s changed=%s",
        event_type,
        reservation_id,
        result.changed,
    )
    return {
        "status": "ok",
        "reservation_id": reservation_id,
        "changed": result.changed,
        "reservation_status": result.status.value if result.status else None,
    }


def cancel_reservation(reservation_id: str, contact_email: Optional[str] = None) -> Optional[ReservationStatus]:
    """
    Annulation explicite (client ou opérateur).
    - contact_email fourni: doit correspondre à celui de la réservation (sinon ValidationError forbidden)
    - EXPIRED/CANCELLED: no-op
    - AWAITING_PAYMENT: la session Stripe est expirée (best effort) pour qu'elle ne soit plus payable
    Retourne le statut final, None si la réservation n'existe pas.
    """
    for _ in range(_CANCEL_RETRIES):
        row = repository.get_reservation(reservation_id)
        if not row:
            return None
        reservation = Reservation.from_row(row)
        if contact_email is not None and reservation.customer_email.lower() != contact_email.strip().lower():
            raise ValidationError("Cette réservation n'est pas associée à cet e-mail", code="forbidden")
        if reservation.status in TERMINAL_STATUSES:
            return reservation.status

        updated = apply_transition(
            reservation_id,
            reservation.status,
            ReservationStatus.CANCELLED,
            extra={"cancelled_at": to_utc_iso(utcnow())},
        )
        if updated is not None:
            if reservation.status == ReservationStatus.AWAITING_PAYMENT:
                stripe_client.expire_session(reservation.payment_session_ref)
            logger.info(
                "reservations.service.cancel_reservation id=%s from=%s",
                reservation_id,
                reservation.status.value,
            )
            return ReservationStatus.CANCELLED
    return _current_status(reservation_id)


def mark_confirmed(reservation_id: str) -> ConfirmationResult:
    """Validation opérateur: PAID -> CONFIRMED (no-op si déjà CONFIRMED)."""
    status = _current_status(reservation_id)
    if status is None:
        return ConfirmationResult(status=None)
    if status != ReservationStatus.PAID:
        return ConfirmationResult(status=status)
    updated = apply_transition(
        reservation_id,
        ReservationStatus.PAID,
        ReservationStatus.CONFIRMED,
        extra={"confirmed_at": to_utc_iso(utcnow())},
    )
    if updated is None:
        return ConfirmationResult(status=_current_status(reservation_id))
    return ConfirmationResult(status=ReservationStatus.CONFIRMED, changed=True)
