"""
Catalogue des packs de base (définis au déploiement, jamais modifiés à l'exécution).
Tous les montants sont en centimes.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# module backend.catalogue.packs
@dataclass(frozen=True)
class PackItem:
    label: str
    qty: int


@dataclass(frozen=True)
class BasePackage:
    key: str
    title: str
    description: str
    default_items: Tuple[PackItem, ...]
    base_price: int


PACKAGE_FAMILIES = ("conference", "soiree", "mariage")

BASE_PACKS: Dict[str, BasePackage] = {
    "conference": BasePackage(
        key="conference",
        title="Pack Conférence",
        description="Sonorisation pour conférences, réunions et présentations, livrée et installée par nos techniciens.",
        default_items=(
            PackItem("Enceinte", 1),
            PackItem("Micro HF", 2),
            PackItem("Console de mixage", 1),
        ),
        base_price=24900,
    ),
    "soiree": BasePackage(
        key="soiree",
        title="Pack Soirée",
        description="Sonorisation pour soirées et événements privés.",
        default_items=(
            PackItem("Enceinte", 1),
            PackItem("Console de mixage", 1),
        ),
        base_price=29900,
    ),
    "mariage": BasePackage(
        key="mariage",
        title="Pack Mariage",
        description="Solution complète pour mariages et événements importants.",
        default_items=(
            PackItem("Enceinte", 2),
            PackItem("Caisson de basses", 1),
            PackItem("Console de mixage", 1),
            PackItem("Micro", 2),
        ),
        base_price=34900,
    ),
}

# Options payantes ajoutables au pack (prix unitaire)
ADDONS: Dict[str, Dict[str, object]] = {
    "micro_filaire": {"label": "Micro filaire supplémentaire", "unit_price": 1000},
    "micro_sans_fil": {"label": "Micro sans fil supplémentaire", "unit_price": 2000},
}

# Nombre d'exemplaires de chaque pack disponibles simultanément
POOL_CAPACITY: Dict[str, int] = {
    "conference": 1,
    "soiree": 1,
    "mariage": 1,
}


def get_base_pack(key: str) -> Optional[BasePackage]:
    """Retourne le pack de base pour sa clé, ou None si inconnu."""
    return BASE_PACKS.get((key or "").strip().lower())


def pool_capacity(package_family: str) -> int:
    return POOL_CAPACITY.get(package_family, 1)
