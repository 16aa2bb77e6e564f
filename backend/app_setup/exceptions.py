"""
Gestionnaires d'exceptions utilisés par la factory.
- ValidationError (saisie du wizard): 400 {detail, code}, corrigeable par l'utilisateur.
- RepositoryError (Supabase indisponible): 503 {detail}, le client peut réessayer.
- HTTPException: JSON {detail} pour tous les clients (API uniquement).
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.reservations.repository import RepositoryError
from backend.utils.errors import ValidationError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info("validation error path=%s code=%s", request.url.path, exc.code)
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(RepositoryError)
    async def repository_error_handler(request: Request, exc: RepositoryError):
        logger.error("repository error path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Service temporairement indisponible"})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
