"""
ASGI entrypoint: expose `app` pour les process managers (uvicorn, gunicorn -k uvicorn.workers.UvicornWorker).
La configuration (routers, middlewares, rate limiting) est centralisée dans backend.app_setup.
"""

from backend.app import app

__all__ = ["app"]
