"""
Résolution de la zone de livraison à partir d'un code postal ou d'un texte libre.
Classification statique (aucun appel réseau). Toute entrée inconnue, absente ou ambiguë
retombe sur HORS_ZONE: on part vers le devis manuel, jamais vers une remise erronée.
"""
import re
from enum import Enum
from typing import Dict, Optional

# module backend.pricing.zones
class DeliveryZone(str, Enum):
    PARIS = "paris"
    PETITE_COURONNE = "petite_couronne"
    GRANDE_COURONNE = "grande_couronne"
    HORS_ZONE = "hors_zone"


# Département (2 premiers chiffres du code postal) -> zone
DEPARTMENT_ZONES: Dict[str, DeliveryZone] = {
    "75": DeliveryZone.PARIS,
    "92": DeliveryZone.PETITE_COURONNE,
    "93": DeliveryZone.PETITE_COURONNE,
    "94": DeliveryZone.PETITE_COURONNE,
    "77": DeliveryZone.GRANDE_COURONNE,
    "78": DeliveryZone.GRANDE_COURONNE,
    "91": DeliveryZone.GRANDE_COURONNE,
    "95": DeliveryZone.GRANDE_COURONNE,
}

ZONE_LABELS: Dict[DeliveryZone, str] = {
    DeliveryZone.PARIS: "Paris",
    DeliveryZone.PETITE_COURONNE: "Petite couronne",
    DeliveryZone.GRANDE_COURONNE: "Grande couronne",
    DeliveryZone.HORS_ZONE: "Hors zone (sur devis)",
}

_POSTAL_CODE_RE = re.compile(r"(?<!\d)(\d{5})(?!\d)")


def extract_postal_code(text: Optional[str]) -> Optional[str]:
    """
    Extrait l'unique code postal (5 chiffres) d'un texte.
    Retourne None si absent ou si plusieurs codes différents sont présents.
    """
    if not text:
        return None
    codes = set(_POSTAL_CODE_RE.findall(str(text)))
    if len(codes) != 1:
        return None
    return codes.pop()


def resolve_zone(address_text: Optional[str] = None, postal_code: Optional[str] = None) -> DeliveryZone:
    """
    Fonction totale: chaque entrée produit exactement une zone, ne lève jamais.
    - postal_code prioritaire s'il est fourni, sinon recherche dans address_text.
    """
    code = extract_postal_code(postal_code) if postal_code else None
    if code is None:
        code = extract_postal_code(address_text)
    if code is None:
        return DeliveryZone.HORS_ZONE
    return DEPARTMENT_ZONES.get(code[:2], DeliveryZone.HORS_ZONE)


def zone_label(zone: DeliveryZone) -> str:
    return ZONE_LABELS.get(zone, ZONE_LABELS[DeliveryZone.HORS_ZONE])
