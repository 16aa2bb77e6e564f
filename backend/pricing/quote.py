"""
Devis d'une réservation: fonction pure, synchrone et sans effet de bord.
Enchaîne zone -> palier -> suppléments -> agrégation et produit un Quote immuable.

Ambiguïté tarifaire (hors zone, effectif au-delà du dernier palier): ce n'est pas une
erreur. Le devis est marqué requires_manual_quote, les montants restent à None et la
soumission automatique est refusée.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.catalogue.packs import ADDONS, BasePackage, PackItem
from backend.pricing.aggregate import PriceBreakdown, aggregate, compute_caution, format_eur
from backend.pricing.surcharges import Surcharge, compute_surcharges
from backend.pricing.tiers import adjust_tier, tier_description
from backend.pricing.zones import DeliveryZone, resolve_zone
from backend.utils.errors import ValidationError
from backend.utils.timespan import Span

# module backend.pricing.quote
REASON_HORS_ZONE = "hors_zone"
REASON_ABOVE_TOP_TIER = "headcount_above_top_tier"

_POSTAL_RE = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class ZoneInput:
    city: str = ""
    postal_code: str = ""


@dataclass(frozen=True)
class AddonLine:
    key: str
    label: str
    quantity: int
    unit_price: int

    @property
    def amount(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Quote:
    package_key: str
    headcount: int
    tier: str
    capacity: str
    items: Tuple[PackItem, ...]
    span: Span
    zone: DeliveryZone
    city: str
    postal_code: str
    base_price: int
    surcharge_breakdown: Tuple[Surcharge, ...]
    addons: Tuple[AddonLine, ...]
    total: Optional[int]
    deposit: Optional[int]
    balance: Optional[int]
    caution: int
    manual_quote_reasons: Tuple[str, ...] = field(default=())
    description: str = ""

    @property
    def requires_manual_quote(self) -> bool:
        return bool(self.manual_quote_reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_key": self.package_key,
            "headcount": self.headcount,
            "tier": self.tier,
            "capacity": self.capacity,
            "items": [{"label": i.label, "qty": i.qty} for i in self.items],
            "start_at": self.span.start.isoformat(),
            "end_at": self.span.end.isoformat(),
            "zone": self.zone.value,
            "city": self.city,
            "postal_code": self.postal_code,
            "base_price": self.base_price,
            "surcharge_breakdown": [
                {"code": s.code, "label": s.label, "amount": s.amount} for s in self.surcharge_breakdown
            ],
            "addons": [
                {"key": a.key, "label": a.label, "quantity": a.quantity, "amount": a.amount} for a in self.addons
            ],
            "total": self.total,
            "deposit": self.deposit,
            "balance": self.balance,
            "caution": self.caution,
            "requires_manual_quote": self.requires_manual_quote,
            "manual_quote_reasons": list(self.manual_quote_reasons),
            "description": self.description,
            # Montants affichés par le wizard ("Sur devis" si non tarifé)
            "display": {
                "total": format_eur(self.total),
                "deposit": format_eur(self.deposit),
                "balance": format_eur(self.balance),
                "caution": format_eur(self.caution),
            },
        }


def normalize_addons(addons: Optional[Iterable[Any]]) -> Tuple[AddonLine, ...]:
    """
    Accepte [(key, qty)], [{"key": ..., "quantity": ...}] ou un dict {key: qty}.
    Agrège les doublons, ignore les quantités nulles, rejette les clés inconnues.
    """
    if not addons:
        return ()
    if isinstance(addons, dict):
        pairs = list(addons.items())
    else:
        pairs = []
        for entry in addons:
            if isinstance(entry, dict):
                pairs.append((entry.get("key"), entry.get("quantity", 1)))
            else:
                key, qty = entry
                pairs.append((key, qty))

    quantities: Dict[str, int] = {}
    for key, qty in pairs:
        key = str(key or "").strip()
        try:
            qty = int(qty or 0)
        except (TypeError, ValueError):
            raise ValidationError("Quantité d'option invalide", code="invalid_addon")
        if key not in ADDONS:
            raise ValidationError(f"Option inconnue: {key}", code="invalid_addon")
        if qty < 0:
            raise ValidationError("Quantité d'option invalide", code="invalid_addon")
        if qty == 0:
            continue
        quantities[key] = quantities.get(key, 0) + qty

    return tuple(
        AddonLine(key=k, label=str(ADDONS[k]["label"]), quantity=q, unit_price=int(ADDONS[k]["unit_price"]))
        for k, q in sorted(quantities.items())
    )


def _zone_input(zone_input: Any) -> ZoneInput:
    if isinstance(zone_input, ZoneInput):
        return zone_input
    if isinstance(zone_input, dict):
        return ZoneInput(city=str(zone_input.get("city") or ""), postal_code=str(zone_input.get("postal_code") or ""))
    return ZoneInput(city=str(zone_input or ""))


def compute_quote(
    base_package: Optional[BasePackage],
    headcount: Optional[int],
    zone_input: Any,
    span: Span,
    addons: Optional[Iterable[Any]] = None,
) -> Quote:
    """
    Calcule le devis complet.
    Lève ValidationError (pack inconnu, effectif manquant, code postal mal formé, option invalide)
    avant tout appel externe; ne lève jamais pour une ambiguïté tarifaire.
    """
    if base_package is None:
        raise ValidationError("Pack inconnu", code="unknown_package")
    if not isinstance(span, Span):
        raise ValidationError("Dates de début et de fin requises", code="missing_dates")

    zi = _zone_input(zone_input)
    postal_code = zi.postal_code.strip()
    if postal_code and not _POSTAL_RE.match(postal_code):
        raise ValidationError("Code postal invalide", code="invalid_postal_code")

    adjustment = adjust_tier(base_package, headcount)
    if not adjustment.is_known:
        raise ValidationError("Nombre de personnes requis", code="missing_headcount")

    addon_lines = normalize_addons(addons)
    span = span.localized()
    zone = resolve_zone(address_text=zi.city, postal_code=postal_code or None)
    surcharges = compute_surcharges(zone, adjustment.tier, span.start, span.end)

    reasons: List[str] = []
    if zone == DeliveryZone.HORS_ZONE:
        reasons.append(REASON_HORS_ZONE)
    if adjustment.requires_manual_quote:
        reasons.append(REASON_ABOVE_TOP_TIER)

    caution = compute_caution(base_package, adjustment.tier)
    breakdown: Optional[PriceBreakdown] = None
    if not reasons:
        breakdown = aggregate(
            adjustment.adjusted_price,
            [s.amount for s in surcharges],
            [a.amount for a in addon_lines],
            caution=caution,
        )

    return Quote(
        package_key=base_package.key,
        headcount=int(headcount),
        tier=adjustment.tier,
        capacity=adjustment.capacity,
        items=adjustment.items,
        span=span,
        zone=zone,
        city=zi.city.strip(),
        postal_code=postal_code,
        base_price=adjustment.adjusted_price,
        surcharge_breakdown=tuple(surcharges),
        addons=addon_lines,
        total=breakdown.total if breakdown else None,
        deposit=breakdown.deposit if breakdown else None,
        balance=breakdown.balance if breakdown else None,
        caution=caution,
        manual_quote_reasons=tuple(reasons),
        description=tier_description(base_package, adjustment),
    )
