import asyncio
import logging
import secrets
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from backend.config import (
    OPERATOR_API_KEY,
    POLL_INTERVAL_SECONDS,
    POLL_MAX_ATTEMPTS,
    POLL_VERIFY_AFTER,
)
from backend.catalogue.packs import get_base_pack
from backend.pricing.draft import draft_from_dict, quote_for_draft
from backend.pricing.quote import Quote
from backend.reservations import service as reservations_service
from backend.reservations.availability import check_availability
from backend.reservations.models import (
    AvailabilityError,
    ManualQuoteRequired,
    PaymentSessionError,
    Submitted,
    Unavailable,
)
from backend.reservations.polling import ConfirmationPoller
from backend.utils.errors import ValidationError
from backend.utils.rate_limit import optional_rate_limit
from backend.utils.timespan import Span

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Reservations API"])

# Fréquence de détection d'une déconnexion client pendant l'attente de confirmation
DISCONNECT_CHECK_SECONDS = 0.25


class QuoteRequest(BaseModel):
    pack_key: str
    headcount: Optional[int] = None
    start_at: datetime
    end_at: datetime
    city: str = ""
    postal_code: str = ""
    addons: Dict[str, int] = Field(default_factory=dict)


class ReservationRequest(QuoteRequest):
    contact_email: EmailStr


class CancelRequest(BaseModel):
    contact_email: EmailStr


def _quote_from_request(body: QuoteRequest) -> Quote:
    draft = draft_from_dict({
        "package_key": body.pack_key,
        "headcount": body.headcount,
        "start": body.start_at,
        "end": body.end_at,
        "city": body.city,
        "postal_code": body.postal_code,
        "addons": body.addons,
    })
    return quote_for_draft(draft)


# module backend.reservations.views
@router.post("/quote")
async def quote(body: QuoteRequest):
    """
    Devis instantané (pur, sans appel externe), recalculé à chaque saisie du wizard.
    - 400 {detail, code} si la saisie est invalide (dates, effectif, code postal, option)
    - requires_manual_quote=true (montants à null) si hors zone ou effectif hors grille
    """
    return {"quote": _quote_from_request(body).to_dict()}


@router.get("/availability", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
async def slot_availability(pack_key: str, start_at: datetime, end_at: datetime):
    """
    Vérification anticipée du créneau pendant la saisie du wizard (indicative:
    POST /reservations revérifie toujours avant de créer quoi que ce soit).
    Réponse: {available, reason, conflicts}
    """
    base_package = get_base_pack(pack_key)
    if base_package is None:
        raise ValidationError("Pack inconnu", code="unknown_package")
    result = await asyncio.to_thread(check_availability, Span(start_at, end_at), base_package.key)
    if isinstance(result, Unavailable):
        return {"available": False, "reason": result.reason, "conflicts": result.conflicts}
    return {"available": True, "reason": None, "conflicts": 0}


@router.post("/reservations", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_reservation(body: ReservationRequest):
    """
    Soumet la réservation et ouvre la session Stripe de l'acompte.
    - 201 {reservation, redirect_url}
    - 409 créneau indisponible (reason SLOT_BOOKED | SLOT_HELD | CHECK_FAILED), aucun enregistrement créé
    - 422 devis manuel requis (reasons)
    - 502 session de paiement impossible
    """
    quote_value = _quote_from_request(body)
    result = reservations_service.submit_reservation(quote_value, str(body.contact_email))

    if isinstance(result, Submitted):
        return JSONResponse(
            status_code=201,
            content={"reservation": result.reservation.to_public_dict(), "redirect_url": result.redirect_url},
        )
    if isinstance(result, AvailabilityError):
        return JSONResponse(status_code=409, content={"detail": result.message, "reason": result.reason})
    if isinstance(result, ManualQuoteRequired):
        return JSONResponse(status_code=422, content={"detail": result.message, "reasons": list(result.reasons)})
    if isinstance(result, PaymentSessionError):
        return JSONResponse(status_code=502, content={"detail": result.message})
    raise HTTPException(status_code=500, detail="Résultat de soumission inattendu")


@router.get("/reservations/{reservation_id}/status")
async def reservation_status(reservation_id: str):
    """Statut stocké, lu par le polling du retour de paiement: {id, status, has_session}."""
    snapshot = reservations_service.get_status(reservation_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Réservation introuvable")
    return snapshot


@router.post(
    "/reservations/{reservation_id}/verify",
    dependencies=[Depends(optional_rate_limit(times=20, seconds=60))],
)
async def verify_reservation(reservation_id: str):
    """
    Repli du polling: revérifie la session auprès de Stripe et met à jour le statut si besoin.
    Un échec transitoire répond 200 avec verified=false (le client reste dans son budget).
    """
    result = reservations_service.confirm_payment(reservation_id)
    if result.status is None and result.error is None:
        raise HTTPException(status_code=404, detail="Réservation introuvable")
    return result.to_dict()


def make_poller(reservation_id: str) -> ConfirmationPoller:
    async def _fetch():
        return await asyncio.to_thread(reservations_service.get_status, reservation_id)

    async def _verify():
        result = await asyncio.to_thread(reservations_service.confirm_payment, reservation_id)
        return result.to_dict()

    return ConfirmationPoller(
        _fetch,
        _verify,
        interval=POLL_INTERVAL_SECONDS,
        max_attempts=POLL_MAX_ATTEMPTS,
        verify_after=POLL_VERIFY_AFTER,
    )


@router.get("/reservations/{reservation_id}/await-confirmation")
async def await_confirmation(reservation_id: str, request: Request):
    """
    Attente bornée de la confirmation côté serveur (page de retour Stripe sans JavaScript).
    Le polling est annulé si le client se déconnecte.
    Réponse: {status, resolved, paid, attempts, verifications, message}
    """
    if reservations_service.get_status(reservation_id) is None:
        raise HTTPException(status_code=404, detail="Réservation introuvable")

    poller = make_poller(reservation_id)
    handle = poller.start()
    try:
        while not handle.done:
            if await request.is_disconnected():
                logger.info("reservations.views.await_confirmation client gone id=%s", reservation_id)
                handle.cancel()
                break
            await asyncio.sleep(DISCONNECT_CHECK_SECONDS)
        outcome = await handle.result()
    finally:
        handle.cancel()

    if outcome is None:
        return JSONResponse(status_code=499, content={"detail": "Attente annulée"})
    return outcome.to_dict()


@router.post("/reservations/{reservation_id}/cancel")
async def cancel_reservation(reservation_id: str, body: CancelRequest):
    """Annulation par le client (e-mail de contact exigé). Idempotente sur EXPIRED/CANCELLED."""
    try:
        status = reservations_service.cancel_reservation(reservation_id, contact_email=str(body.contact_email))
    except ValidationError as e:
        if e.code == "forbidden":
            raise HTTPException(status_code=403, detail=e.message)
        raise
    if status is None:
        raise HTTPException(status_code=404, detail="Réservation introuvable")
    return {"id": reservation_id, "status": status.value}


def require_operator(x_operator_key: Optional[str] = Header(default=None)) -> None:
    if not OPERATOR_API_KEY or not x_operator_key or not secrets.compare_digest(x_operator_key, OPERATOR_API_KEY):
        raise HTTPException(status_code=403, detail="Accès opérateur requis")


@router.post("/reservations/{reservation_id}/confirm", dependencies=[Depends(require_operator)])
async def confirm_reservation(reservation_id: str):
    """Validation opérateur: PAID -> CONFIRMED."""
    result = reservations_service.mark_confirmed(reservation_id)
    if result.status is None:
        raise HTTPException(status_code=404, detail="Réservation introuvable")
    return {"id": reservation_id, "status": result.status.value, "changed": result.changed}
