"""
Paliers de capacité (S/M/L) par famille de pack.

Règle de bornes: chaque palier est [min, max): borne basse incluse, borne haute exclue.
Un effectif pile sur une borne (30, 70) passe donc dans le palier SUPÉRIEUR.
Au-delà du dernier palier (>= 150 personnes), on renvoie le palier L à son prix
avec requires_manual_quote=True, sans extrapoler.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from backend.catalogue.packs import BasePackage, PackItem
from backend.utils.errors import ValidationError

# module backend.pricing.tiers
MANUAL_QUOTE_HEADCOUNT = 150


@dataclass(frozen=True)
class TierBand:
    tier: str
    min_headcount: int
    max_headcount: int  # exclu
    price: int
    capacity: str
    items: Tuple[PackItem, ...]


@dataclass(frozen=True)
class TierAdjustment:
    tier: Optional[str]
    capacity: str
    adjusted_price: Optional[int]
    items: Tuple[PackItem, ...] = ()
    requires_manual_quote: bool = False

    @property
    def is_known(self) -> bool:
        return self.tier is not None


# Sentinelle « palier inconnu » (effectif absent ou nul): ne jamais retomber sur S par défaut
UNKNOWN_TIER = TierAdjustment(tier=None, capacity="", adjusted_price=None)

_CAPACITY_S = "Moins de 30 personnes"
_CAPACITY_M = "30 à 69 personnes"
_CAPACITY_L = "70 à 149 personnes"
_CAPACITY_XL = "150 personnes et plus (sur devis)"

_L_ITEMS = (
    PackItem("Enceinte", 2),
    PackItem("Caisson de basses", 2),
    PackItem("Micro HF", 4),
    PackItem("Console de mixage", 1),
)

TIER_BANDS: Dict[str, Tuple[TierBand, ...]] = {
    "conference": (
        TierBand("S", 1, 30, 21200, _CAPACITY_S, (
            PackItem("Enceinte", 1), PackItem("Micro HF", 2), PackItem("Console de mixage", 1),
        )),
        TierBand("M", 30, 70, 27400, _CAPACITY_M, (
            PackItem("Enceinte", 2), PackItem("Micro HF", 3), PackItem("Console de mixage", 1),
        )),
        TierBand("L", 70, MANUAL_QUOTE_HEADCOUNT, 31100, _CAPACITY_L, _L_ITEMS),
    ),
    "soiree": (
        TierBand("S", 1, 30, 25400, _CAPACITY_S, (
            PackItem("Enceinte", 1), PackItem("Console de mixage", 1),
        )),
        TierBand("M", 30, 70, 32900, _CAPACITY_M, (
            PackItem("Enceinte", 2), PackItem("Console de mixage", 1),
        )),
        TierBand("L", 70, MANUAL_QUOTE_HEADCOUNT, 37400, _CAPACITY_L, _L_ITEMS),
    ),
    # Le pack Mariage commence directement en M
    "mariage": (
        TierBand("M", 1, 70, 38400, "Jusqu'à 69 personnes", (
            PackItem("Enceinte", 2), PackItem("Caisson de basses", 1),
            PackItem("Console de mixage", 1), PackItem("Micro", 2),
        )),
        TierBand("L", 70, MANUAL_QUOTE_HEADCOUNT, 43600, _CAPACITY_L, _L_ITEMS),
    ),
}


def bands_for(package_key: str) -> Tuple[TierBand, ...]:
    bands = TIER_BANDS.get(package_key)
    if not bands:
        raise ValidationError(f"Pack inconnu: {package_key}", code="unknown_package")
    return bands


def adjust_tier(base_package: BasePackage, headcount: Optional[int]) -> TierAdjustment:
    """
    Calcule le palier d'un pack pour un effectif déclaré.
    - None/0 -> UNKNOWN_TIER
    - effectif négatif -> ValidationError
    - effectif >= 150 -> palier L, requires_manual_quote=True
    """
    if headcount is None or headcount == 0:
        return UNKNOWN_TIER
    if headcount < 0:
        raise ValidationError("Le nombre de personnes doit être positif", code="invalid_headcount")

    bands = bands_for(base_package.key)
    for band in bands:
        if band.min_headcount <= headcount < band.max_headcount:
            return TierAdjustment(
                tier=band.tier,
                capacity=band.capacity,
                adjusted_price=band.price,
                items=band.items,
            )

    top = bands[-1]
    return TierAdjustment(
        tier=top.tier,
        capacity=_CAPACITY_XL,
        adjusted_price=top.price,
        items=top.items,
        requires_manual_quote=True,
    )


def tier_description(base_package: BasePackage, adjustment: TierAdjustment) -> str:
    """Description courte affichée sous le prix du pack."""
    if not adjustment.is_known:
        return base_package.title
    descriptions = {
        "S": "Configuration compacte et efficace.",
        "M": "Équilibre entre puissance et simplicité.",
        "L": "Sonorisation professionnelle avec impact maximal.",
    }
    return f"{base_package.title} {adjustment.tier} - {adjustment.capacity}. {descriptions[adjustment.tier]}"
