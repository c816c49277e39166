"""Payment sessions: one operator's staged payment for one student, plus the in-memory session store."""

import logging
import time
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from feedesk.clients.services import FeeBalanceService, PaymentService
from feedesk.core.config import settings
from feedesk.core.enums import InstitutionContext, PaymentPurpose
from feedesk.core.exceptions import BusyError, SessionNotFoundError
from feedesk.core.loading import LoadingTracker

from .builder import PaymentItemBuilder
from .coordinator import CompletionListener, PaymentSubmissionCoordinator
from .schemas import (
    FeeBalance,
    MultiplePaymentData,
    PaymentItem,
    PurposeAvailability,
    SubmissionOutcome,
    TermAvailability,
    ValidationResult,
    ValidationRules,
)
from .validator import get_available_terms, get_purpose_availability, validate_form

logger = logging.getLogger(__name__)


class PaymentSession:
    def __init__(
        self,
        context: InstitutionContext,
        student_id: str,
        admission_no: str,
        balances: FeeBalance,
        payment_service: PaymentService,
        rules: Optional[ValidationRules] = None,
        loading: Optional[LoadingTracker] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.context = InstitutionContext(context)
        self.student_id = student_id
        self.admission_no = admission_no
        self.balances = balances
        self.rules = rules or ValidationRules.from_settings()
        self.remarks: Optional[str] = None
        self.builder = PaymentItemBuilder()
        self.coordinator = PaymentSubmissionCoordinator(
            self.builder, payment_service, self.rules, self.context, loading=loading
        )
        self.touched_at = 0.0
        self._validation = ValidationResult()
        self.builder.subscribe(self._revalidate)
        self._revalidate(self.builder)

    # --- Staging ---
    def add_item(self, item: PaymentItem) -> None:
        self._ensure_idle()
        self.builder.add_item(item)

    def update_item(self, item: PaymentItem) -> None:
        self._ensure_idle()
        self.builder.update_item(item)

    def remove_item(self, item_id: str) -> None:
        self._ensure_idle()
        self.builder.remove_item(item_id)

    @property
    def items(self) -> Tuple[PaymentItem, ...]:
        return self.builder.get_items()

    @property
    def total(self) -> Decimal:
        return self.builder.get_total()

    @property
    def validation(self) -> ValidationResult:
        return self._validation

    def data(self) -> MultiplePaymentData:
        return MultiplePaymentData(
            student_id=self.student_id,
            admission_no=self.admission_no,
            items=list(self.builder.get_items()),
            remarks=self.remarks,
        )

    def available_purposes(self) -> List[PurposeAvailability]:
        return get_purpose_availability(self.balances, self.rules, self.items)

    def available_terms(self, purpose: PaymentPurpose) -> List[TermAvailability]:
        return get_available_terms(purpose, self.balances, self.rules)

    # --- Submission ---
    def on_complete(self, listener: CompletionListener):
        return self.coordinator.on_complete(listener)

    async def submit(self, remarks: Optional[str] = None) -> SubmissionOutcome:
        if remarks is not None:
            self.remarks = remarks.strip() or None
        return await self.coordinator.submit(self.data(), self.balances)

    def cancel(self) -> None:
        """Abandon the session: abort any in-flight submission and drop staged items."""
        if self.coordinator.abort():
            logger.info("Aborted in-flight submission for session %s", self.id)
        self.builder.clear()

    def _ensure_idle(self) -> None:
        if self.coordinator.is_busy:
            raise BusyError("Staged items cannot change while a submission is in progress")

    def _revalidate(self, builder: PaymentItemBuilder) -> None:
        self._validation = validate_form(self.data(), self.rules, self.balances)


class SessionStore:
    """
    In-memory sessions. A session left idle longer than the TTL is closed on
    the next open() or get(), so abandoned staging does not outlive its
    operator. Sessions with a submission in flight are never swept.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, PaymentSession] = {}
        self._ttl = settings.payment_session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock

    async def open(
        self,
        context: InstitutionContext,
        student_id: str,
        admission_no: str,
        balance_service: FeeBalanceService,
        payment_service: PaymentService,
        rules: Optional[ValidationRules] = None,
        loading: Optional[LoadingTracker] = None,
    ) -> PaymentSession:
        """Load balances once and start a staging session."""
        self.sweep()
        context = InstitutionContext(context)
        if loading is not None:
            async with loading.track("fee-balances", message="Loading fee balances"):
                balances = await balance_service.get_balances(admission_no, context)
        else:
            balances = await balance_service.get_balances(admission_no, context)
        session = PaymentSession(
            context, student_id, admission_no, balances, payment_service, rules=rules, loading=loading
        )
        session.touched_at = self._clock()
        self._sessions[session.id] = session
        logger.info("Opened payment session %s for admission %s (%s)", session.id, admission_no, context.value)
        return session

    def get(self, session_id: str) -> PaymentSession:
        self.sweep()
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touched_at = self._clock()
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.cancel()

    def discard(self, session_id: str) -> None:
        """Forget a finished session without touching it."""
        self._sessions.pop(session_id, None)

    def sweep(self) -> int:
        """Close sessions idle past the TTL. Returns how many were closed."""
        if self._ttl <= 0:
            return 0
        cutoff = self._clock() - self._ttl
        expired = [
            s.id for s in self._sessions.values()
            if s.touched_at < cutoff and not s.coordinator.is_busy
        ]
        for session_id in expired:
            self.close(session_id)
            logger.info("Closed idle payment session %s", session_id)
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
