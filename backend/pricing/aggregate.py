"""
Agrégation des montants d'un devis (centimes entiers).
L'arrondi a lieu une seule fois, ici; les montants ne sont jamais ré-arrondis en aval.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

from backend.catalogue.packs import BasePackage

# module backend.pricing.aggregate
DEPOSIT_RATE = Decimal("0.30")

BASE_CAUTIONS: Dict[str, int] = {
    "conference": 70000,
    "soiree": 110000,
    "mariage": 160000,
}

TIER_CAUTION_MULTIPLIERS: Dict[str, Decimal] = {
    "S": Decimal("1.0"),
    "M": Decimal("1.2"),
    "L": Decimal("1.5"),
}


@dataclass(frozen=True)
class PriceBreakdown:
    total: int
    deposit: int
    balance: int
    caution: int


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_deposit(total: int) -> tuple:
    """
    Acompte 30% arrondi, solde = complément exact.
    L'éventuel écart d'arrondi est absorbé par le solde: deposit + balance == total.
    """
    deposit = _round_cents(Decimal(total) * DEPOSIT_RATE)
    return deposit, total - deposit


def compute_caution(base_package: BasePackage, tier: Optional[str]) -> int:
    """
    Caution (empreinte bancaire demandée J-2): base par pack x multiplicateur du palier.
    Indépendante du total et hors montant payable.
    """
    base = BASE_CAUTIONS.get(base_package.key, 0)
    multiplier = TIER_CAUTION_MULTIPLIERS.get(tier or "S", Decimal("1.0"))
    return _round_cents(Decimal(base) * multiplier)


def aggregate(
    base_price: int,
    surcharges: Iterable[int],
    addons: Iterable[int],
    caution: int = 0,
) -> PriceBreakdown:
    """
    total = base + somme(suppléments) + somme(options)
    Les montants doivent être des entiers déjà résolus (aucun None: le devis manuel est géré en amont).
    """
    amounts = [base_price, *surcharges, *addons]
    if any(a is None for a in amounts):
        raise ValueError("aggregate() ne peut pas tarifer un montant sur devis")
    if any(int(a) != a or a < 0 for a in amounts):
        raise ValueError("Les montants doivent être des centimes entiers positifs")
    total = sum(int(a) for a in amounts)
    deposit, balance = split_deposit(total)
    return PriceBreakdown(total=total, deposit=deposit, balance=balance, caution=caution)


def format_eur(cents: Optional[int]) -> str:
    """Affichage en euros entiers (ex: 27400 -> '274 €'), 'Sur devis' si None."""
    if cents is None:
        return "Sur devis"
    euros = Decimal(cents) / 100
    if euros == euros.to_integral_value():
        return f"{int(euros)} €"
    return f"{euros:.2f} €".replace(".", ",")
