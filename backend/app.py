# module backend.app
"""
Instance FastAPI unique, construite par la factory (backend.app_setup.factory).
Importée par backend.asgi, python -m backend et les tests.
"""
import logging
import os

from backend.app_setup.factory import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
