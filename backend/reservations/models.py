"""
Modèle de la réservation et résultats typés du moteur.

Cycle de vie (monotone):
    DRAFT (client uniquement) -> AWAITING_PAYMENT -> PAID -> CONFIRMED
    branches terminales: CANCELLED (action explicite), EXPIRED (hold non payé à temps)
Les erreurs de disponibilité et de paiement sont des valeurs, pas des exceptions.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from backend.utils.timespan import parse_datetime

# module backend.reservations.models
class ReservationStatus(str, Enum):
    DRAFT = "DRAFT"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @classmethod
    def parse(cls, value: Any) -> "ReservationStatus":
        raw = str(getattr(value, "value", value) or "").strip().upper()
        if raw == "CANCELED":
            raw = "CANCELLED"
        return cls(raw)


TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.DRAFT: frozenset({ReservationStatus.AWAITING_PAYMENT, ReservationStatus.CANCELLED}),
    ReservationStatus.AWAITING_PAYMENT: frozenset({
        ReservationStatus.PAID,
        ReservationStatus.EXPIRED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.PAID: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.EXPIRED: frozenset(),
}

# Statuts où le paiement est acquis: le polling s'arrête
SETTLED_STATUSES = frozenset({ReservationStatus.PAID, ReservationStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({ReservationStatus.CANCELLED, ReservationStatus.EXPIRED})
# Statuts qui occupent un créneau
BLOCKING_STATUSES = frozenset({ReservationStatus.AWAITING_PAYMENT, ReservationStatus.PAID, ReservationStatus.CONFIRMED})


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class Reservation:
    id: str
    package_key: str
    tier: str
    start_at: datetime
    end_at: datetime
    zone: str
    total: int
    deposit: int
    balance: int
    caution: int
    customer_email: str
    status: ReservationStatus
    payment_session_ref: Optional[str] = None
    hold_expires_at: Optional[datetime] = None
    city: str = ""
    postal_code: str = ""
    headcount: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Reservation":
        return cls(
            id=str(row["id"]),
            package_key=row.get("pack_key") or "",
            tier=row.get("tier") or "",
            start_at=parse_datetime(row.get("start_at")),
            end_at=parse_datetime(row.get("end_at")),
            zone=row.get("zone") or "",
            total=int(row.get("price_total") or 0),
            deposit=int(row.get("deposit_amount") or 0),
            balance=int(row.get("balance_amount") or 0),
            caution=int(row.get("caution_amount") or 0),
            customer_email=row.get("customer_email") or "",
            status=ReservationStatus.parse(row.get("status")),
            payment_session_ref=row.get("stripe_session_id") or None,
            hold_expires_at=parse_datetime(row.get("hold_expires_at")),
            city=row.get("city") or "",
            postal_code=row.get("postal_code") or "",
            headcount=row.get("headcount"),
            created_at=parse_datetime(row.get("created_at")),
            updated_at=parse_datetime(row.get("updated_at")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pack_key": self.package_key,
            "tier": self.tier,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "zone": self.zone,
            "price_total": self.total,
            "deposit_amount": self.deposit,
            "balance_amount": self.balance,
            "caution_amount": self.caution,
            "status": self.status.value,
            "stripe_session_id": self.payment_session_ref,
            "hold_expires_at": self.hold_expires_at.isoformat() if self.hold_expires_at else None,
        }


# --- Résultats typés ---

@dataclass(frozen=True)
class Available:
    ok: bool = True


@dataclass(frozen=True)
class Unavailable:
    reason: str
    conflicts: int = 0
    ok: bool = False


# Raisons d'indisponibilité
SLOT_BOOKED = "SLOT_BOOKED"
SLOT_HELD = "SLOT_HELD"


@dataclass(frozen=True)
class AvailabilityError:
    reason: str
    message: str = "Ce créneau n'est plus disponible, veuillez choisir d'autres dates."


@dataclass(frozen=True)
class ManualQuoteRequired:
    reasons: tuple
    message: str = "Cette demande nécessite un devis personnalisé."


@dataclass(frozen=True)
class PaymentSessionError:
    message: str = "Impossible d'ouvrir la session de paiement, veuillez réessayer."


@dataclass(frozen=True)
class Submitted:
    reservation: Reservation
    redirect_url: str


@dataclass(frozen=True)
class PaymentVerificationFailure:
    message: str
    retryable: bool = True


@dataclass(frozen=True)
class ConfirmationResult:
    """
    Résultat de confirm_payment / apply_payment_confirmation.
    - changed=False: no-op idempotent (déjà payée, transition perdue, rien à faire)
    - error: échec transitoire de vérification auprès du prestataire
    """
    status: Optional[ReservationStatus]
    changed: bool = False
    error: Optional[PaymentVerificationFailure] = None

    @property
    def settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value if self.status else None,
            "changed": self.changed,
            "verified": self.error is None,
            "error": self.error.message if self.error else None,
            "retryable": self.error.retryable if self.error else False,
        }
