"""
Erreurs « locales » du moteur de réservation.
Seules les erreurs de saisie sont des exceptions: elles sont levées avant tout appel externe
et affichées en ligne par le wizard. Les erreurs de disponibilité et de paiement sont
des résultats typés (voir backend.reservations.models).
"""

class ValidationError(Exception):
    def __init__(self, message: str, code: str = "invalid"):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}
