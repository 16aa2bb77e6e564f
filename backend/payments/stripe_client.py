"""
Adaptateur Stripe: centralise les appels et la configuration Stripe (Checkout, webhook).
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import stripe
from fastapi import Request

from backend.config import STRIPE_CURRENCY, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET as WEBHOOK_SECRET

logger = logging.getLogger(__name__)

# Statuts normalisés d'une session côté moteur de réservation
SESSION_PAID = "paid"
SESSION_UNPAID = "unpaid"
SESSION_EXPIRED = "expired"

RESERVATION_PAYMENT_TYPE = "client_reservation_deposit"


# module backend.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe


def create_session(
    *,
    amount: int,
    reservation_id: str,
    customer_email: str,
    success_url: str,
    cancel_url: str,
    expires_at: datetime,
    description: str = "Acompte réservation",
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout pour l'acompte (montant en centimes).
    - metadata: {"type": "client_reservation_deposit", "reservation_id": "..."}
    - expires_at: fin de la session (Stripe impose au moins 30 minutes), le hold dure HOLD_GRACE_SECONDS de plus
    Retour: {"session_ref": "cs_test_...", "redirect_url": "https://checkout.stripe.com/..."}
    """
    require_stripe()
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": STRIPE_CURRENCY,
                "product_data": {"name": description},
                "unit_amount": int(amount),
            },
            "quantity": 1,
        }],
        customer_email=customer_email or None,
        success_url=success_url,
        cancel_url=cancel_url,
        client_reference_id=str(reservation_id),
        metadata={"type": RESERVATION_PAYMENT_TYPE, "reservation_id": str(reservation_id)},
        expires_at=int(expires_at.timestamp()),
        payment_method_types=["card"],
    )
    # stripe retourne un objet; on le traite comme dict-compatible
    data = dict(session)
    return {"session_ref": data.get("id"), "redirect_url": data.get("url")}


def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "status", "payment_status", "metadata", etc.
    """
    require_stripe()
    session = stripe.checkout.Session.retrieve(session_id)
    return dict(session)


def session_status(session: Dict[str, Any]) -> str:
    """Réduit une session Stripe à paid | unpaid | expired."""
    if (session or {}).get("payment_status") in ("paid", "no_payment_required"):
        return SESSION_PAID
    if (session or {}).get("status") == "expired":
        return SESSION_EXPIRED
    return SESSION_UNPAID


def get_session_status(session_ref: str) -> str:
    """
    Statut de paiement d'une session. Les erreurs réseau/Stripe remontent à l'appelant
    (la réconciliation les traite comme des échecs transitoires).
    """
    return session_status(get_session(session_ref))


def expire_session(session_ref: Optional[str]) -> bool:
    """Expire une session ouverte (best effort, ex: insertion de la réservation échouée)."""
    if not session_ref:
        return False
    try:
        require_stripe()
        stripe.checkout.Session.expire(session_ref)
        return True
    except Exception:
        logger.exception("payments.stripe_client.expire_session failed session=%s", session_ref)
        return False


async def parse_event(request: Request):
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    Retour: l'objet event si la signature est valide.
    """
    require_stripe()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or request.headers.get("Stripe-Signature")
    event = stripe.Webhook.construct_event(payload, sig_header, WEBHOOK_SECRET or "")
    return event
