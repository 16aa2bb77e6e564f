"""
État du wizard de réservation (BookingDraft): valeur immuable côté client.
Chaque saisie produit un nouveau draft via apply_change(); le devis est une fonction
pure et mémoïsée du draft, recalculable à chaque frappe sans état partagé.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional, Tuple

from backend.catalogue.packs import get_base_pack
from backend.pricing.quote import Quote, ZoneInput, compute_quote
from backend.utils.errors import ValidationError
from backend.utils.timespan import Span, parse_datetime

# module backend.pricing.draft
@dataclass(frozen=True)
class BookingDraft:
    package_key: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    city: str = ""
    postal_code: str = ""
    headcount: Optional[int] = None
    addons: Tuple[Tuple[str, int], ...] = ()
    contact_email: str = ""


EDITABLE_FIELDS = {f for f in BookingDraft.__dataclass_fields__}


def _coerce(field_name: str, value: Any) -> Any:
    if field_name in ("start", "end"):
        return parse_datetime(value, field=field_name)
    if field_name == "headcount":
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError("Nombre de personnes invalide", code="invalid_headcount")
    if field_name == "postal_code":
        return "".join(ch for ch in str(value or "") if ch.isdigit())[:5]
    if field_name == "addons":
        if isinstance(value, dict):
            value = value.items()
        return tuple(sorted((str(k), int(q)) for k, q in (value or ())))
    return str(value or "").strip()


def apply_change(draft: BookingDraft, field_name: str, value: Any) -> BookingDraft:
    """Réducteur pur: retourne un nouveau draft avec le champ modifié."""
    if field_name not in EDITABLE_FIELDS:
        raise ValidationError(f"Champ inconnu: {field_name}", code="unknown_field")
    return replace(draft, **{field_name: _coerce(field_name, value)})


def draft_from_dict(data: dict) -> BookingDraft:
    draft = BookingDraft()
    for key, value in (data or {}).items():
        if key in EDITABLE_FIELDS:
            draft = apply_change(draft, key, value)
    return draft


@lru_cache(maxsize=256)
def quote_for_draft(draft: BookingDraft) -> Quote:
    """
    Devis mémoïsé d'un draft (le draft est hashable car immuable).
    Lève ValidationError tant que le draft est incomplet ou incohérent.
    """
    if draft.start is None or draft.end is None:
        raise ValidationError("Dates de début et de fin requises", code="missing_dates")
    return compute_quote(
        get_base_pack(draft.package_key),
        draft.headcount,
        ZoneInput(city=draft.city, postal_code=draft.postal_code),
        Span(draft.start, draft.end),
        list(draft.addons),
    )
