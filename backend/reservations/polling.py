"""
Protocole de réconciliation du paiement (retour de Stripe Checkout).

Boucle coopérative asyncio, bornée:
- lit le statut stocké toutes les `interval` secondes, au plus `max_attempts` fois
- à partir de la tentative `verify_after`, si le statut est encore AWAITING_PAYMENT et qu'une
  session existe, demande une vérification directe auprès de Stripe avant de reprendre
- les échecs de vérification consomment le même budget que le polling
- budget épuisé: une relecture forcée, puis le dernier statut connu avec resolved=False

start() retourne un PollingHandle: cancel() arrête la tâche et ses temporisations,
un jeton de fraîcheur écarte les résultats d'un polling remplacé.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from backend.config import POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS, POLL_VERIFY_AFTER
from backend.reservations.models import SETTLED_STATUSES, TERMINAL_STATUSES, ReservationStatus

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[], Awaitable[Optional[Dict[str, Any]]]]
Verifier = Callable[[], Awaitable[Optional[Dict[str, Any]]]]

REFRESH_MESSAGE = "Statut du paiement inconnu pour le moment, veuillez rafraîchir la page."

_FINAL_STATUSES = {s.value for s in SETTLED_STATUSES | TERMINAL_STATUSES}


@dataclass(frozen=True)
class PollOutcome:
    status: Optional[str]
    resolved: bool
    attempts: int
    verifications: int = 0
    verification_failures: int = 0
    message: Optional[str] = None

    @property
    def paid(self) -> bool:
        return self.status in {s.value for s in SETTLED_STATUSES}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "resolved": self.resolved,
            "paid": self.paid,
            "attempts": self.attempts,
            "verifications": self.verifications,
            "message": self.message,
        }


class PollingHandle:
    """Poignée d'un polling en cours: cancel() idempotent, result() -> PollOutcome | None."""

    def __init__(self, task: "asyncio.Task", token: int, poller: "ConfirmationPoller"):
        self._task = task
        self.token = token
        self._poller = poller

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def stale(self) -> bool:
        return self._poller.token != self.token

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    async def result(self) -> Optional[PollOutcome]:
        """None si le polling a été annulé ou remplacé entre-temps."""
        try:
            outcome = await self._task
        except asyncio.CancelledError:
            return None
        if self.stale:
            return None
        return outcome


# module backend.reservations.polling
class ConfirmationPoller:
    def __init__(
        self,
        fetch_status: StatusFetcher,
        verify: Verifier,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        verify_after: int = POLL_VERIFY_AFTER,
        is_visible: Optional[Callable[[], bool]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._fetch_status = fetch_status
        self._verify = verify
        self.interval = interval
        self.max_attempts = max(1, int(max_attempts))
        self.verify_after = max(1, int(verify_after))
        self._is_visible = is_visible or (lambda: True)
        self._sleep = sleep
        self.token = 0
        self._in_flight = False
        self._handle: Optional[PollingHandle] = None

    @property
    def verifying(self) -> bool:
        return self._in_flight

    def start(self) -> PollingHandle:
        """(Re)démarre le polling; un polling précédent est annulé et devient obsolète."""
        self.cancel()
        self.token += 1
        task = asyncio.ensure_future(self._run(self.token))
        self._handle = PollingHandle(task, self.token, self)
        return self._handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def verify_now(self) -> Optional[Dict[str, Any]]:
        """
        Vérification directe, protégée par le drapeau in-flight.
        Retourne None si une vérification est déjà en cours pour cette réservation.
        Les exceptions du vérificateur remontent à l'appelant.
        """
        if self._in_flight:
            return None
        self._in_flight = True
        try:
            return await self._verify()
        finally:
            self._in_flight = False

    async def _wait_visible(self, token: int) -> bool:
        while not self._is_visible():
            await self._sleep(self.interval)
            if token != self.token:
                return False
        return True

    async def _read(self) -> Optional[Dict[str, Any]]:
        try:
            return await self._fetch_status()
        except Exception:
            logger.exception("reservations.polling.read failed")
            return None

    async def _run(self, token: int) -> Optional[PollOutcome]:
        last_status: Optional[str] = None
        has_session = False
        verifications = 0
        failures = 0
        attempts = 0

        while attempts < self.max_attempts:
            if not await self._wait_visible(token):
                return None
            attempts += 1

            snapshot = await self._read()
            if token != self.token:
                return None
            if snapshot:
                last_status = snapshot.get("status") or last_status
                has_session = bool(snapshot.get("has_session", has_session))
            if last_status in _FINAL_STATUSES:
                return PollOutcome(last_status, True, attempts, verifications, failures)

            if (
                attempts >= self.verify_after
                and last_status == ReservationStatus.AWAITING_PAYMENT.value
                and has_session
            ):
                try:
                    verified = await self.verify_now()
                except Exception:
                    logger.exception("reservations.polling.verify failed attempt=%s", attempts)
                    verified = None
                    failures += 1
                else:
                    if verified is not None:
                        verifications += 1
                        if verified.get("error"):
                            failures += 1
                if token != self.token:
                    return None
                if verified and verified.get("status"):
                    last_status = verified["status"]
                if last_status in _FINAL_STATUSES:
                    return PollOutcome(last_status, True, attempts, verifications, failures)

            if attempts < self.max_attempts:
                await self._sleep(self.interval)
                if token != self.token:
                    return None

        # Budget épuisé: une relecture forcée puis dernier statut connu
        snapshot = await self._read()
        if token != self.token:
            return None
        if snapshot and snapshot.get("status"):
            last_status = snapshot["status"]
        resolved = last_status in _FINAL_STATUSES
        logger.info(
            "reservations.polling.exhausted status=%s attempts=%s verifications=%s failures=%s",
            last_status,
            attempts,
            verifications,
            failures,
        )
        return PollOutcome(
            last_status,
            resolved,
            attempts,
            verifications,
            failures,
            message=None if resolved else REFRESH_MESSAGE,
        )
