import logging
from typing import Any, Dict

import backend.infra.supabase_client as supabase_client
from backend.config import RESERVATIONS_TABLE, STRIPE_SECRET_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)


# module backend.health.service
def health_supabase_info() -> Dict[str, Any]:
    """Lecture minimale de la table des réservations (connectivité + droits service-role)."""
    info: Dict[str, Any] = {"url_set": bool(SUPABASE_URL), "table": RESERVATIONS_TABLE, "connect_ok": False}
    try:
        supabase_client.get_service_supabase().table(RESERVATIONS_TABLE).select("id").limit(1).execute()
        info["connect_ok"] = True
    except Exception as e:
        logger.exception("health.service.health_supabase_info failed")
        info["error"] = type(e).__name__
    return info


def health_stripe_info() -> Dict[str, Any]:
    return {"configured": bool(STRIPE_SECRET_KEY), "test_mode": STRIPE_SECRET_KEY.startswith("sk_test_")}
