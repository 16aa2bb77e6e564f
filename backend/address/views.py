from fastapi import APIRouter, Query

from backend.address import lookup

router = APIRouter(prefix="/api/v1/address", tags=["Address API"])


# module backend.address.views
@router.get("/cities")
async def cities(q: str = Query(default="", max_length=80)):
    """Auto-complétion des villes: {"cities": [{city, postal_code}]} (liste vide si le service est indisponible)."""
    return {"cities": await lookup.suggest_cities(q)}
