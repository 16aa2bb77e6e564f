"""
Suppléments automatiques d'une réservation (centimes):
- livraison selon la zone (0 pour Paris, devis manuel hors zone)
- installation obligatoire dès que le palier n'est pas S
- récupération le lendemain (J+1) selon la date/heure de fin et la zone
Un montant None signifie « sur devis »: le supplément ne doit jamais être auto-tarifé.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from backend.config import LOCAL_TIMEZONE
from backend.pricing.zones import DeliveryZone, zone_label

# module backend.pricing.surcharges
DELIVERY_SUPPLEMENTS: Dict[DeliveryZone, Optional[int]] = {
    DeliveryZone.PARIS: 0,
    DeliveryZone.PETITE_COURONNE: 12000,
    DeliveryZone.GRANDE_COURONNE: 15600,
    DeliveryZone.HORS_ZONE: None,
}

INSTALLATION_FEES: Dict[str, int] = {
    "M": 5900,
    "L": 8900,
}

NEXT_DAY_PICKUP_FEES: Dict[DeliveryZone, Optional[int]] = {
    DeliveryZone.PARIS: 4500,
    DeliveryZone.PETITE_COURONNE: 7000,
    DeliveryZone.GRANDE_COURONNE: 11000,
    DeliveryZone.HORS_ZONE: None,
}

PICKUP_CUTOFF = time(2, 0)


@dataclass(frozen=True)
class Surcharge:
    code: str
    label: str
    amount: Optional[int]

    @property
    def requires_manual_quote(self) -> bool:
        return self.amount is None


def delivery_supplement(zone: DeliveryZone) -> Optional[int]:
    return DELIVERY_SUPPLEMENTS.get(zone)


def installation_fee(tier: Optional[str]) -> int:
    """Installation automatique et non négociable pour M et L; jamais facturée en S."""
    if tier is None or tier == "S":
        return 0
    return INSTALLATION_FEES[tier]


def _local(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(LOCAL_TIMEZONE)).replace(tzinfo=None)


def requires_next_day_pickup(start: datetime, end: datetime) -> bool:
    """
    Règle unique de récupération J+1.
    La fenêtre de récupération se ferme à 02:00 le lendemain du jour de début:
    fin < coupure -> récupération le soir même; fin >= coupure -> J+1.
    Ex. début 2025-06-01 20:00: fin 23:30 ou 2025-06-02 01:30 -> non; 2025-06-02 02:30 -> oui.
    Un événement sur plusieurs jours dépasse toujours la coupure.
    Les dates avec fuseau sont ramenées à l'heure locale (LOCAL_TIMEZONE).
    """
    start_local = _local(start)
    end_local = _local(end)
    cutoff = datetime.combine(start_local.date() + timedelta(days=1), PICKUP_CUTOFF)
    return end_local >= cutoff


def next_day_pickup_fee(start: datetime, end: datetime, zone: DeliveryZone) -> Optional[int]:
    """0 si la récupération J+1 n'est pas nécessaire, sinon le tarif de la zone (None hors zone)."""
    if not requires_next_day_pickup(start, end):
        return 0
    return NEXT_DAY_PICKUP_FEES.get(zone)


def compute_surcharges(
    zone: DeliveryZone,
    tier: Optional[str],
    start: datetime,
    end: datetime,
) -> List[Surcharge]:
    """
    Construit le détail ordonné des suppléments.
    - livraison: toujours présente (0 € pour Paris)
    - installation: présente si et seulement si le palier n'est pas S
    - récupération J+1: présente uniquement si déclenchée
    """
    surcharges: List[Surcharge] = [
        Surcharge("delivery", f"Livraison A/R ({zone_label(zone)})", delivery_supplement(zone)),
    ]
    fee = installation_fee(tier)
    if fee:
        surcharges.append(Surcharge("installation", f"Installation & réglages (pack {tier})", fee))
    if requires_next_day_pickup(start, end):
        surcharges.append(Surcharge("next_day_pickup", "Récupération le lendemain (J+1)", next_day_pickup_fee(start, end, zone)))
    return surcharges
