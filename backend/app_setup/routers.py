"""
Registre central des routers (API v1, health).
- API v1: devis + réservations, webhook paiements, auto-complétion d'adresse
- Health: health_router
"""
from fastapi import FastAPI
from backend.reservations import views as reservations_views
from backend.payments import views as payments_views
from backend.address import views as address_views
from backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l'application.
    - L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes).
    """
    # API v1
    app.include_router(reservations_views.router)
    app.include_router(payments_views.router)
    app.include_router(address_views.router)
    # Health & monitoring
    app.include_router(health_router)
