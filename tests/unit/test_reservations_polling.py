import asyncio

import pytest

from backend.reservations.polling import REFRESH_MESSAGE, ConfirmationPoller


class Script:
    """Source de statuts scriptée: une valeur par lecture, la dernière est répétée."""

    def __init__(self, statuses, has_session=True):
        self.statuses = list(statuses)
        self.has_session = has_session
        self.reads = 0
        self.verifies = 0
        self.verify_results = []
        self.verify_errors = 0

    async def fetch(self):
        self.reads += 1
        status = self.statuses[min(self.reads - 1, len(self.statuses) - 1)]
        if isinstance(status, Exception):
            raise status
        return {"status": status, "has_session": self.has_session}

    async def verify(self):
        self.verifies += 1
        if self.verify_errors:
            self.verify_errors -= 1
            raise ConnectionError("network down")
        if self.verify_results:
            return self.verify_results.pop(0)
        return {"status": "AWAITING_PAYMENT", "verified": True, "error": None}


def _poller(script, sleeps, **kw):
    async def fake_sleep(seconds):
        sleeps.append(seconds)
        await asyncio.sleep(0)

    kw.setdefault("interval", 1.0)
    kw.setdefault("max_attempts", 5)
    kw.setdefault("verify_after", 3)
    return ConfirmationPoller(script.fetch, script.verify, sleep=fake_sleep, **kw)


@pytest.mark.asyncio
async def test_poll_stops_when_status_flips():
    script = Script(["AWAITING_PAYMENT", "PAID"])
    sleeps = []
    outcome = await _poller(script, sleeps).start().result()
    assert outcome.status == "PAID"
    assert outcome.resolved is True
    assert outcome.attempts == 2
    assert script.verifies == 0
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_verification_starts_at_third_attempt():
    script = Script(["AWAITING_PAYMENT"])
    script.verify_results = [{"status": "PAID", "verified": True, "error": None}]
    outcome = await _poller(script, []).start().result()
    assert outcome.status == "PAID"
    assert outcome.attempts == 3
    assert script.verifies == 1
    assert outcome.verifications == 1


@pytest.mark.asyncio
async def test_no_verification_without_session():
    script = Script(["AWAITING_PAYMENT"], has_session=False)
    outcome = await _poller(script, []).start().result()
    assert script.verifies == 0
    assert outcome.resolved is False


@pytest.mark.asyncio
async def test_exhaustion_forces_refresh_and_returns_last_status():
    script = Script(["AWAITING_PAYMENT"])
    sleeps = []
    outcome = await _poller(script, sleeps).start().result()
    assert outcome.status == "AWAITING_PAYMENT"
    assert outcome.resolved is False
    assert outcome.message == REFRESH_MESSAGE
    assert outcome.attempts == 5
    # 5 lectures + 1 relecture forcée, vérifications aux tentatives 3, 4 et 5
    assert script.reads == 6
    assert script.verifies == 3
    assert len(sleeps) == 4


@pytest.mark.asyncio
async def test_forced_refresh_can_still_resolve():
    script = Script(["AWAITING_PAYMENT"] * 5 + ["PAID"])
    outcome = await _poller(script, []).start().result()
    assert outcome.status == "PAID"
    assert outcome.resolved is True
    assert outcome.message is None


@pytest.mark.asyncio
async def test_verification_failures_consume_same_budget():
    script = Script(["AWAITING_PAYMENT"])
    script.verify_errors = 10
    outcome = await _poller(script, []).start().result()
    assert outcome.attempts == 5
    assert outcome.verification_failures == 3
    assert outcome.status == "AWAITING_PAYMENT"
    assert outcome.resolved is False


@pytest.mark.asyncio
async def test_read_errors_keep_last_known_status():
    script = Script(["AWAITING_PAYMENT", ConnectionError("boom"), "PAID"])
    outcome = await _poller(script, []).start().result()
    assert outcome.status == "PAID"
    assert outcome.attempts == 3


@pytest.mark.asyncio
async def test_terminal_status_stops_polling():
    script = Script(["EXPIRED"])
    outcome = await _poller(script, []).start().result()
    assert outcome.status == "EXPIRED"
    assert outcome.resolved is True
    assert outcome.paid is False


@pytest.mark.asyncio
async def test_cancel_returns_none_and_stops_reads():
    script = Script(["AWAITING_PAYMENT"])
    gate = asyncio.Event()

    async def blocking_sleep(seconds):
        await gate.wait()

    poller = ConfirmationPoller(script.fetch, script.verify, sleep=blocking_sleep, interval=1.0)
    handle = poller.start()
    await asyncio.sleep(0)
    handle.cancel()
    assert await handle.result() is None
    reads = script.reads
    gate.set()
    await asyncio.sleep(0)
    assert script.reads == reads
    assert handle.done


@pytest.mark.asyncio
async def test_restart_makes_previous_handle_stale():
    script = Script(["AWAITING_PAYMENT", "AWAITING_PAYMENT", "PAID"])
    poller = _poller(script, [])
    first = poller.start()
    second = poller.start()
    assert first.stale is True
    assert await first.result() is None
    outcome = await second.result()
    assert outcome is not None and outcome.status == "PAID"


@pytest.mark.asyncio
async def test_hidden_page_defers_without_consuming_attempts():
    script = Script(["AWAITING_PAYMENT", "PAID"])
    visible = {"value": False}
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) >= 3:
            visible["value"] = True
        await asyncio.sleep(0)

    poller = ConfirmationPoller(
        script.fetch, script.verify, sleep=fake_sleep, interval=1.0, is_visible=lambda: visible["value"]
    )
    outcome = await poller.start().result()
    assert outcome.status == "PAID"
    assert outcome.attempts == 2
    assert script.reads == 2
    assert len(sleeps) == 4


@pytest.mark.asyncio
async def test_in_flight_guard_prevents_overlapping_verifications():
    release = asyncio.Event()
    calls = []

    async def slow_verify():
        calls.append(1)
        await release.wait()
        return {"status": "PAID"}

    async def fetch():
        return {"status": "AWAITING_PAYMENT", "has_session": True}

    poller = ConfirmationPoller(fetch, slow_verify)
    first = asyncio.ensure_future(poller.verify_now())
    await asyncio.sleep(0)
    assert poller.verifying is True
    assert await poller.verify_now() is None
    release.set()
    assert await first == {"status": "PAID"}
    assert len(calls) == 1
    assert poller.verifying is False
