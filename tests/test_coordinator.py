import asyncio
from decimal import Decimal
from typing import List

import pytest

from conftest import FakePaymentService
from feedesk.core.enums import InstitutionContext, PaymentPurpose, SubmissionState
from feedesk.core.exceptions import BusyError, PaymentSystemError, PaymentValidationError
from feedesk.core.loading import LoadingTracker
from feedesk.payments.builder import PaymentItemBuilder
from feedesk.payments.coordinator import PaymentSubmissionCoordinator
from feedesk.payments.schemas import (
    BookFeeItem,
    MultiplePaymentData,
    PaymentCompleted,
    TuitionFeeItem,
    ValidationRules,
)


def make_coordinator(payment_service, rules, loading=None):
    builder = PaymentItemBuilder()
    coordinator = PaymentSubmissionCoordinator(
        builder, payment_service, rules, InstitutionContext.SCHOOL, loading=loading
    )
    return builder, coordinator


def stage(builder: PaymentItemBuilder, *items) -> MultiplePaymentData:
    for item in items:
        builder.add_item(item)
    return MultiplePaymentData(student_id="st-1", admission_no="ADM-001", items=list(builder.get_items()))


async def wait_until(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_successful_submission(payment_service: FakePaymentService, rules: ValidationRules, balances) -> None:
    builder, coordinator = make_coordinator(payment_service, rules)
    events: List[PaymentCompleted] = []
    coordinator.on_complete(events.append)
    data = stage(
        builder,
        TuitionFeeItem(term_number=1, amount=Decimal("10000")),
        BookFeeItem(amount=Decimal("1500")),
    )

    outcome = await coordinator.submit(data, balances)

    assert outcome.state == SubmissionState.SUCCESS
    assert outcome.reference == "RCPT-0001"
    assert coordinator.state == SubmissionState.SUCCESS
    assert coordinator.last_result.reference == "RCPT-0001"
    assert len(builder) == 0
    assert len(payment_service.calls) == 1

    assert len(events) == 1
    assert events[0].purposes == [PaymentPurpose.BOOK_FEE, PaymentPurpose.TUITION_FEE]
    assert events[0].context == InstitutionContext.SCHOOL
    assert events[0].total_amount == Decimal("11500")

    coordinator.acknowledge()
    assert coordinator.state == SubmissionState.IDLE


@pytest.mark.asyncio
async def test_double_submit_is_rejected(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    """A second submit while the first is in flight fails fast and never reaches the service."""
    builder, coordinator = make_coordinator(payment_service, rules)
    data = stage(builder, TuitionFeeItem(term_number=1, amount=Decimal("10000")))
    payment_service.gate = asyncio.Event()

    first = asyncio.ensure_future(coordinator.submit(data))
    await wait_until(lambda: coordinator.state == SubmissionState.SUBMITTING)

    with pytest.raises(BusyError):
        await coordinator.submit(data)

    payment_service.gate.set()
    outcome = await first
    assert outcome.state == SubmissionState.SUCCESS
    assert len(payment_service.calls) == 1


@pytest.mark.asyncio
async def test_validation_failure_keeps_items(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    builder, coordinator = make_coordinator(payment_service, rules)
    data = stage(
        builder,
        TuitionFeeItem(term_number=1, amount=Decimal("10000")),
        TuitionFeeItem(term_number=1, amount=Decimal("10000")),
    )

    outcome = await coordinator.submit(data)

    assert outcome.state == SubmissionState.FAILED
    assert "Duplicate tuition fee payment for term 1" in outcome.errors
    assert isinstance(coordinator.last_error, PaymentValidationError)
    assert payment_service.calls == []
    assert len(builder) == 2


@pytest.mark.asyncio
async def test_service_failure_keeps_items(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    builder, coordinator = make_coordinator(payment_service, rules)
    data = stage(builder, BookFeeItem(amount=Decimal("1500")))
    payment_service.error = PaymentSystemError("Payment rejected (500): ledger offline")
    events = []
    coordinator.on_complete(events.append)

    outcome = await coordinator.submit(data)

    assert outcome.state == SubmissionState.FAILED
    assert outcome.errors == ["Payment rejected (500): ledger offline"]
    assert isinstance(coordinator.last_error, PaymentSystemError)
    assert len(builder) == 1
    assert events == []

    # Retrying after a failure is allowed.
    payment_service.error = None
    outcome = await coordinator.submit(data)
    assert outcome.state == SubmissionState.SUCCESS


@pytest.mark.asyncio
async def test_unexpected_error_is_wrapped(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    _, coordinator = make_coordinator(payment_service, rules)
    data = stage(PaymentItemBuilder(), BookFeeItem(amount=Decimal("1500")))
    payment_service.error = RuntimeError("connection reset")

    outcome = await coordinator.submit(data)

    assert outcome.state == SubmissionState.FAILED
    assert outcome.errors == ["connection reset"]
    assert coordinator.last_error.cause is payment_service.error


@pytest.mark.asyncio
async def test_abort_in_flight_submission(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    builder, coordinator = make_coordinator(payment_service, rules)
    data = stage(builder, BookFeeItem(amount=Decimal("1500")))
    payment_service.gate = asyncio.Event()

    assert coordinator.abort() is False

    pending = asyncio.ensure_future(coordinator.submit(data))
    await wait_until(lambda: coordinator.state == SubmissionState.SUBMITTING)
    assert coordinator.abort() is True

    outcome = await pending
    assert outcome.state == SubmissionState.FAILED
    assert outcome.errors == ["Payment submission was aborted"]
    assert len(builder) == 1


@pytest.mark.asyncio
async def test_loading_ticket_held_during_submission(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    tracker = LoadingTracker()
    builder, coordinator = make_coordinator(payment_service, rules, loading=tracker)
    data = stage(builder, BookFeeItem(amount=Decimal("1500")))
    payment_service.gate = asyncio.Event()

    pending = asyncio.ensure_future(coordinator.submit(data))
    await wait_until(lambda: coordinator.state == SubmissionState.SUBMITTING)
    assert tracker.is_loading
    assert tracker.current.label == "payment-submit"

    payment_service.gate.set()
    await pending
    assert not tracker.is_loading


@pytest.mark.asyncio
async def test_failing_listener_does_not_fail_submission(payment_service: FakePaymentService, rules: ValidationRules) -> None:
    _, coordinator = make_coordinator(payment_service, rules)
    received = []

    def broken(event: PaymentCompleted) -> None:
        raise RuntimeError("listener bug")

    async def recorder(event: PaymentCompleted) -> None:
        received.append(event.reference)

    coordinator.on_complete(broken)
    coordinator.on_complete(recorder)
    data = stage(PaymentItemBuilder(), BookFeeItem(amount=Decimal("1500")))

    outcome = await coordinator.submit(data)
    assert outcome.state == SubmissionState.SUCCESS
    assert received == ["RCPT-0001"]
