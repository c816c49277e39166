"""
Payment submission coordinator.

IDLE -> VALIDATING -> SUBMITTING -> SUCCESS | FAILED, back to IDLE on
acknowledge(). At most one submission is in flight; a second submit() while
busy raises BusyError and never reaches the payment service.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from feedesk.clients.services import PaymentService
from feedesk.core.enums import InstitutionContext, PaymentPurpose, SubmissionState
from feedesk.core.exceptions import BusyError, PaymentSystemError, PaymentValidationError, ServiceError
from feedesk.core.loading import LoadingTracker

from .builder import PaymentItemBuilder
from .schemas import FeeBalance, MultiplePaymentData, PaymentCompleted, PaymentReceipt, SubmissionOutcome, ValidationRules
from .validator import validate_form

logger = logging.getLogger(__name__)

CompletionListener = Callable[[PaymentCompleted], Union[None, Awaitable[None]]]

_BUSY_STATES = (SubmissionState.VALIDATING, SubmissionState.SUBMITTING)


class PaymentSubmissionCoordinator:
    def __init__(
        self,
        builder: PaymentItemBuilder,
        payment_service: PaymentService,
        rules: ValidationRules,
        context: InstitutionContext,
        loading: Optional[LoadingTracker] = None,
    ) -> None:
        self._builder = builder
        self._payment_service = payment_service
        self._rules = rules
        self._context = context
        self._loading = loading or LoadingTracker()
        self._state = SubmissionState.IDLE
        self._last_error: Optional[ServiceError] = None
        self._last_result: Optional[PaymentReceipt] = None
        self._inflight: Optional[asyncio.Future] = None
        self._aborted = False
        self._listeners: List[CompletionListener] = []

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def last_error(self) -> Optional[ServiceError]:
        return self._last_error

    @property
    def last_result(self) -> Optional[PaymentReceipt]:
        return self._last_result

    @property
    def is_busy(self) -> bool:
        return self._state in _BUSY_STATES

    def on_complete(self, listener: CompletionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def submit(
        self,
        data: MultiplePaymentData,
        balances: Optional[FeeBalance] = None,
    ) -> SubmissionOutcome:
        if self.is_busy:
            logger.warning("Rejected submission for %s: another submission is in flight", data.admission_no)
            raise BusyError()

        self._state = SubmissionState.VALIDATING
        self._last_error = None
        self._last_result = None
        validation = validate_form(data, self._rules, balances)
        if not validation.is_valid:
            return self._fail(PaymentValidationError(validation.errors))

        self._state = SubmissionState.SUBMITTING
        self._aborted = False
        logger.info(
            "Submitting %s payment item(s) for admission %s, total=%s",
            len(data.items), data.admission_no, data.total_amount,
        )
        try:
            async with self._loading.track("payment-submit", priority=10, message="Processing payment"):
                self._inflight = asyncio.ensure_future(self._payment_service.submit(data))
                receipt = await self._inflight
        except asyncio.CancelledError:
            if not self._aborted:
                self._fail(PaymentSystemError("Payment submission was cancelled"))
                raise
            return self._fail(PaymentSystemError("Payment submission was aborted"))
        except PaymentSystemError as e:
            return self._fail(e)
        except Exception as e:
            logger.exception("Payment service raised an unexpected error")
            return self._fail(PaymentSystemError(str(e) or "Payment submission failed", cause=e))
        finally:
            self._inflight = None

        self._builder.clear()
        self._last_result = receipt
        self._state = SubmissionState.SUCCESS
        logger.info("Payment %s recorded for admission %s", receipt.reference, data.admission_no)

        purposes = [p for p in PaymentPurpose if any(i.purpose == p for i in data.items)]
        await self._emit(
            PaymentCompleted(
                admission_no=data.admission_no,
                context=self._context,
                purposes=purposes,
                reference=receipt.reference,
                total_amount=data.total_amount,
            )
        )
        return SubmissionOutcome(state=self._state, reference=receipt.reference)

    def abort(self) -> bool:
        """Cancel the in-flight service call. Returns False when nothing is in flight."""
        if self._inflight is None or self._inflight.done():
            return False
        self._aborted = True
        self._inflight.cancel()
        return True

    def acknowledge(self) -> None:
        if self._state in (SubmissionState.SUCCESS, SubmissionState.FAILED):
            self._state = SubmissionState.IDLE

    def _fail(self, error: ServiceError) -> SubmissionOutcome:
        self._state = SubmissionState.FAILED
        self._last_error = error
        errors = error.errors if isinstance(error, PaymentValidationError) else [error.message]
        if isinstance(error, PaymentSystemError):
            logger.warning("Payment submission failed: %s", error.message)
        return SubmissionOutcome(state=self._state, errors=errors)

    async def _emit(self, event: PaymentCompleted) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Payment completion listener failed for %s", event.reference)
