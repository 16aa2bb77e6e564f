"""
Module 'pricing' (feature-first): point d'entrée public.
Réunit zones, paliers, suppléments, agrégation et devis. Tout est pur (pas de Stripe, pas de DB).
"""

from .zones import DeliveryZone, resolve_zone, zone_label
from .tiers import TierAdjustment, UNKNOWN_TIER, adjust_tier
from .surcharges import (
    Surcharge,
    compute_surcharges,
    delivery_supplement,
    installation_fee,
    next_day_pickup_fee,
    requires_next_day_pickup,
)
from .aggregate import PriceBreakdown, aggregate, compute_caution, format_eur
from .quote import Quote, ZoneInput, compute_quote
from .draft import BookingDraft, apply_change, quote_for_draft

__all__ = [
    # zones
    "DeliveryZone",
    "resolve_zone",
    "zone_label",
    # tiers
    "TierAdjustment",
    "UNKNOWN_TIER",
    "adjust_tier",
    # surcharges
    "Surcharge",
    "compute_surcharges",
    "delivery_supplement",
    "installation_fee",
    "next_day_pickup_fee",
    "requires_next_day_pickup",
    # aggregate
    "PriceBreakdown",
    "aggregate",
    "compute_caution",
    "format_eur",
    # quote
    "Quote",
    "ZoneInput",
    "compute_quote",
    "BookingDraft",
    "apply_change",
    "quote_for_draft",
]
