"""
Payment result poller.

After checkout the intent is usually still pending: the gateway settles it
asynchronously and the server learns about it through the webhook. The
poller asks `/api/payment/verify/{referenceId}` every POLL_INTERVAL_SECONDS
until the intent is terminal or MAX_POLLS attempts have been made. A failed
status request counts as an attempt and polling carries on after it.
Polls are strictly sequential; a manual refetch shares the same lock and
never moves the poll counter.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from application.dtos.payments import PaymentDetails
from application.ports.platform_api import PlatformApi
from application.services.checkout_service import user_message
from core.logging_config import get_logger
from domain.payment.entity import PaymentStatus
from infrastructure.external.api_clients.base import APIError

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 5
MAX_POLLS = 12


class PollState(str, Enum):
    VERIFYING = "verifying"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ERROR = "error"


FINAL_STATES = frozenset({PollState.COMPLETED, PollState.FAILED, PollState.TIMED_OUT})

UNVERIFIED_MESSAGE = "We couldn't verify your payment status. Please check your dashboard for updates."

STATE_MESSAGES = {
    PollState.VERIFYING: "Verifying your payment...",
    PollState.PENDING: "Your payment is being processed. This page will update automatically.",
    PollState.COMPLETED: "Your payment was successful! You are now enrolled in the course.",
    PollState.FAILED: "Your payment could not be processed. Please try again or contact support.",
    PollState.TIMED_OUT: UNVERIFIED_MESSAGE,
    PollState.ERROR: UNVERIFIED_MESSAGE,
}

_STATE_BY_STATUS = {
    PaymentStatus.PENDING: PollState.PENDING,
    PaymentStatus.COMPLETED: PollState.COMPLETED,
    PaymentStatus.FAILED: PollState.FAILED,
}


@dataclass(frozen=True)
class PollSnapshot:
    state: PollState
    poll_count: int
    payment: Optional[PaymentDetails] = None
    error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.state == PollState.ERROR and self.error:
            return self.error
        return STATE_MESSAGES[self.state]

    @property
    def is_final(self) -> bool:
        return self.state in FINAL_STATES


class PaymentResultPoller:
    def __init__(
        self,
        client: PlatformApi,
        reference_id: str,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_change: Optional[Callable[[PollSnapshot], None]] = None,
    ) -> None:
        self.client = client
        self.reference_id = reference_id
        self._sleep = sleep
        self._on_change = on_change
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._snapshot = PollSnapshot(state=PollState.VERIFYING, poll_count=0)

    @property
    def snapshot(self) -> PollSnapshot:
        return self._snapshot

    @property
    def state(self) -> PollState:
        return self._snapshot.state

    @property
    def poll_count(self) -> int:
        return self._snapshot.poll_count

    def _update(self, **changes) -> PollSnapshot:
        previous = self._snapshot
        current = PollSnapshot(
            state=changes.get("state", previous.state),
            poll_count=changes.get("poll_count", previous.poll_count),
            payment=changes.get("payment", previous.payment),
            error=changes.get("error"),
        )
        self._snapshot = current
        if current.state != previous.state:
            logger.info(
                "payment_poll_state",
                reference_id=self.reference_id,
                state=current.state.value,
                poll_count=current.poll_count,
            )
        if self._on_change is not None and current != previous:
            self._on_change(current)
        return current

    async def _poll_once(self, *, counted: bool) -> PollSnapshot:
        try:
            result = await self.client.verify_payment(self.reference_id)
        except APIError as exc:
            logger.warning(
                "payment_poll_failed",
                reference_id=self.reference_id,
                status_code=exc.status_code,
                error=exc.message,
            )
            return self._failed(exc, counted=counted)
        except ValidationError as exc:
            logger.warning(
                "payment_poll_invalid_response",
                reference_id=self.reference_id,
                errors=exc.error_count(),
            )
            return self._failed(exc, counted=counted)

        payment = result.payment
        state = _STATE_BY_STATUS[payment.status]
        logger.debug("payment_poll_result", reference_id=self.reference_id, status=payment.status.value)

        if state != PollState.PENDING:
            return self._update(state=state, payment=payment)

        if counted:
            count = self.poll_count + 1
            state = PollState.TIMED_OUT if count >= MAX_POLLS else PollState.PENDING
            return self._update(state=state, poll_count=count, payment=payment)

        # Manual refetch: a pending answer does not undo a time-out
        if self.state == PollState.TIMED_OUT:
            return self._update(payment=payment)
        return self._update(state=PollState.PENDING, payment=payment)

    def _failed(self, exc: Exception, *, counted: bool) -> PollSnapshot:
        error = user_message(exc)
        if counted:
            count = self.poll_count + 1
            state = PollState.TIMED_OUT if count >= MAX_POLLS else PollState.ERROR
            return self._update(state=state, poll_count=count, error=error)
        # A failed manual refetch keeps a settled outcome
        if self.state in FINAL_STATES:
            return self._update(error=error)
        return self._update(state=PollState.ERROR, error=error)

    async def run(self) -> PollSnapshot:
        """Poll until the intent is terminal or MAX_POLLS attempts have been made."""
        while True:
            async with self._lock:
                if self.state in FINAL_STATES:
                    return self._snapshot
                snapshot = await self._poll_once(counted=True)
            if snapshot.state not in (PollState.PENDING, PollState.ERROR):
                return snapshot
            await self._sleep(POLL_INTERVAL_SECONDS)

    async def refetch(self) -> PollSnapshot:
        """Ask once, now. Allowed in every state."""
        async with self._lock:
            return await self._poll_once(counted=False)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def wait(self) -> PollSnapshot:
        if self._task is None:
            return await self.run()
        return await self._task

    async def cancel(self) -> None:
        """Stop polling; no request or timer is left pending afterwards."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("payment_poll_cancelled", reference_id=self.reference_id, poll_count=self.poll_count)

    async def __aenter__(self) -> "PaymentResultPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()
