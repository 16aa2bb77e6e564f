# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du backend de réservation.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), CORS/hosts
- Expose les paramètres du moteur de réservation (durée du hold, polling de confirmation)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Supabase: URL et clé service-role (le moteur écrit les réservations côté serveur)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")
RESERVATIONS_TABLE = os.getenv("RESERVATIONS_TABLE", "client_reservations")
PAYMENTS_TABLE = os.getenv("PAYMENTS_TABLE", "reservation_payments")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé privée et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "eur")

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")

# Pages de retour du checkout (reservation_id est ajouté par le service)
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/reservation/success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/reservation/cancel")

# Durée de la session Checkout (expires_at); Stripe refuse moins de 30 minutes.
HOLD_TTL_MINUTES = max(30, _int_env("HOLD_TTL_MINUTES", 30))
# Le hold (blocage du créneau) expire HOLD_GRACE_SECONDS après la session
HOLD_GRACE_SECONDS = max(0, _int_env("HOLD_GRACE_SECONDS", 300))

# Protocole de réconciliation (polling côté client)
POLL_INTERVAL_SECONDS = _float_env("POLL_INTERVAL_SECONDS", 1.0)
POLL_MAX_ATTEMPTS = _int_env("POLL_MAX_ATTEMPTS", 5)
POLL_VERIFY_AFTER = _int_env("POLL_VERIFY_AFTER", 3)

# Fuseau des règles horaires (coupure 02:00 pour la récupération J+1)
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "Europe/Paris")

# Auto-complétion des villes (best effort, jamais bloquant)
ADDRESS_API_URL = _clean_env(os.getenv("ADDRESS_API_URL") or "https://api-adresse.data.gouv.fr/search/")
ADDRESS_API_TIMEOUT = _float_env("ADDRESS_API_TIMEOUT", 3.0)

# Validation opérateur PAID -> CONFIRMED (en-tête X-Operator-Key); vide = route désactivée
OPERATOR_API_KEY = _clean_env(os.getenv("OPERATOR_API_KEY") or "")
