"""
Accès aux données pour la feature 'reservations' (Supabase, client service-role).
Toutes les transitions de statut sont des compare-and-swap sur (id, statut attendu):
une mise à jour qui ne touche aucune ligne signifie que la course est perdue.
Les lectures et écritures de la machine à états lèvent RepositoryError si Supabase échoue:
None est réservé à « aucune ligne ».
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import backend.infra.supabase_client as supabase_client
from backend.config import PAYMENTS_TABLE, RESERVATIONS_TABLE
from backend.utils.timespan import Span, to_utc_iso

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Échec d'infrastructure (réseau, Supabase), à distinguer d'une course perdue."""


# module backend.reservations.repository
def _first(res) -> Optional[dict]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


def create_reservation(record: Dict[str, Any]) -> Optional[dict]:
    """
    Insère la réservation (déjà en AWAITING_PAYMENT, avec sa référence de session).
    Retourne la ligne créée, ou None en cas d'erreur.
    """
    try:
        res = supabase_client.get_service_supabase().table(RESERVATIONS_TABLE).insert(record).execute()
        return _first(res)
    except Exception:
        logger.exception("reservations.repository.create_reservation failed id=%s", record.get("id"))
        return None


def get_reservation(reservation_id: str) -> Optional[dict]:
    """Ligne complète, None si inconnue. Lève RepositoryError si la lecture échoue."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(RESERVATIONS_TABLE)
            .select("*")
            .eq("id", str(reservation_id))
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception as e:
        logger.exception("reservations.repository.get_reservation failed id=%s", reservation_id)
        raise RepositoryError(f"get_reservation failed: {type(e).__name__}") from e


def get_reservation_status(reservation_id: str) -> Optional[dict]:
    """Lecture légère utilisée par le polling: {id, status, stripe_session_id}."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(RESERVATIONS_TABLE)
            .select("id,status,stripe_session_id")
            .eq("id", str(reservation_id))
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception as e:
        logger.exception("reservations.repository.get_reservation_status failed id=%s", reservation_id)
        raise RepositoryError(f"get_reservation_status failed: {type(e).__name__}") from e


def update_reservation_status(
    reservation_id: str,
    status: str,
    expected_status: str,
    session_ref: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """
    Compare-and-swap: UPDATE ... WHERE id = :id AND status = :expected_status.
    - Si session_ref est fourni, la ligne doit aussi porter cette référence de session.
    Retourne la ligne mise à jour, None si aucune ligne ne correspond (course perdue).
    Lève RepositoryError si l'écriture échoue: le statut réel est alors inconnu.
    """
    payload: Dict[str, Any] = {"status": status}
    if extra:
        payload.update(extra)
    try:
        query = (
            supabase_client.get_service_supabase()
            .table(RESERVATIONS_TABLE)
            .update(payload)
            .eq("id", str(reservation_id))
            .eq("status", expected_status)
        )
        if session_ref:
            query = query.eq("stripe_session_id", session_ref)
        return _first(query.execute())
    except Exception as e:
        logger.exception(
            "reservations.repository.update_reservation_status failed id=%s %s->%s",
            reservation_id,
            expected_status,
            status,
        )
        raise RepositoryError(f"update_reservation_status failed: {type(e).__name__}") from e


def query_overlapping(span: Span, package_family: str, statuses: Iterable[str]) -> Optional[List[dict]]:
    """
    Réservations du même pack chevauchant [start, end): start < span.end ET end > span.start.
    Retourne None si la lecture échoue (l'appelant ne doit pas conclure à une disponibilité).
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(RESERVATIONS_TABLE)
            .select("id,status,start_at,end_at,hold_expires_at")
            .eq("pack_key", package_family)
            .in_("status", list(statuses))
            .lt("start_at", to_utc_iso(span.end))
            .gt("end_at", to_utc_iso(span.start))
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.query_overlapping failed pack=%s", package_family)
        return None


def list_expired_holds(now: datetime) -> List[dict]:
    """Holds AWAITING_PAYMENT dont hold_expires_at est dépassé."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(RESERVATIONS_TABLE)
            .select("id,status,stripe_session_id,hold_expires_at")
            .eq("status", "AWAITING_PAYMENT")
            .lte("hold_expires_at", to_utc_iso(now))
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("reservations.repository.list_expired_holds failed")
        return []


def insert_deposit_payment(
    *,
    reservation_id: str,
    session_ref: Optional[str],
    amount: int,
    currency: str,
    source: str,
) -> Optional[dict]:
    """
    Ligne de grand livre de l'acompte encaissé (une seule par réservation:
    contrainte unique sur reservation_id côté base).
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(PAYMENTS_TABLE)
            .insert({
                "reservation_id": str(reservation_id),
                "stripe_session_id": session_ref,
                "amount": int(amount),
                "currency": currency,
                "kind": "deposit",
                "source": source,
            })
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("reservations.repository.insert_deposit_payment failed id=%s", reservation_id)
        return None
