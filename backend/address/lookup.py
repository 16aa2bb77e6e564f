"""
Auto-complétion des villes (api-adresse.data.gouv.fr), best effort.
Ne participe pas à la résolution de zone: une panne ici ne bloque jamais un devis.
"""
import logging
from typing import Dict, List

import httpx

from backend.config import ADDRESS_API_TIMEOUT, ADDRESS_API_URL

logger = logging.getLogger(__name__)

# Paris, petite couronne, grande couronne
ALLOWED_DEPARTMENTS = ("75", "92", "93", "94", "77", "78", "91", "95")
MIN_PREFIX_LENGTH = 2
MAX_SUGGESTIONS = 8


# module backend.address.lookup
def _department(postal_code: str) -> str:
    return (postal_code or "")[:2]


def _parse_features(payload: Dict) -> List[Dict[str, str]]:
    suggestions: List[Dict[str, str]] = []
    seen = set()
    for feature in (payload or {}).get("features") or []:
        props = feature.get("properties") or {}
        city = (props.get("city") or props.get("name") or "").strip()
        postal_code = str(props.get("postcode") or "").strip()
        if not city or _department(postal_code) not in ALLOWED_DEPARTMENTS:
            continue
        key = (city.lower(), postal_code)
        if key in seen:
            continue
        seen.add(key)
        suggestions.append({"city": city, "postal_code": postal_code})
    return suggestions[:MAX_SUGGESTIONS]


async def suggest_cities(prefix: str) -> List[Dict[str, str]]:
    """
    Suggestions [{city, postal_code}] restreintes à l'Île-de-France desservie.
    Retourne [] sur préfixe trop court, timeout, erreur HTTP ou réponse illisible.
    """
    query = (prefix or "").strip()
    if len(query) < MIN_PREFIX_LENGTH:
        return []
    params = {"q": query, "type": "municipality", "limit": 20, "autocomplete": 1}
    try:
        async with httpx.AsyncClient(timeout=ADDRESS_API_TIMEOUT) as client:
            response = await client.get(ADDRESS_API_URL, params=params)
            response.raise_for_status()
            return _parse_features(response.json())
    except Exception:
        logger.exception("address.lookup.suggest_cities failed prefix=%s", query)
        return []
