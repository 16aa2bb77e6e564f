import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.payments import stripe_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


# module backend.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (Checkout) pour les acomptes de réservation.
    - Signature: valide via stripe_client.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - checkout.session.completed / async_payment_succeeded: AWAITING_PAYMENT -> PAID (idempotent)
    - checkout.session.expired: AWAITING_PAYMENT -> EXPIRED
    - Réponses: {"status": "ok", ...} ou {"status": "ignored", "reason": ...}
    - Erreurs: 400 si signature/payload invalide
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.exception("Erreur webhook_stripe (signature/payload)")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")

    # Importer le module pour bénéficier des monkeypatchs de tests
    from backend.reservations import service as reservations_service
    try:
        result = reservations_service.handle_payment_event(event)
    except Exception:
        logger.exception("Erreur webhook_stripe (traitement)")
        # 500: Stripe relivrera l'événement, la transition étant idempotente
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return JSONResponse(result)
