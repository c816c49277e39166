import asyncio
from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from feedesk.api import dependencies
from feedesk.core.enums import InstitutionContext
from feedesk.core.loading import LoadingTracker
from feedesk.invalidation.cache import InMemoryCacheStore
from feedesk.invalidation.dispatcher import InvalidationDispatcher
from feedesk.main import app
from feedesk.payments.schemas import (
    FeeBalance,
    MultiplePaymentData,
    PaymentReceipt,
    ValidationRules,
)
from feedesk.payments.service import SessionStore


class FakePaymentService:
    """In-process payment service. Set `gate` to hold submissions, `error` to fail them."""

    def __init__(self) -> None:
        self.calls: List[MultiplePaymentData] = []
        self.error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None
        self.reference = "RCPT-0001"

    async def submit(self, data: MultiplePaymentData) -> PaymentReceipt:
        self.calls.append(data)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return PaymentReceipt(reference=self.reference)


class FakeFeeBalanceService:
    def __init__(self, balances: FeeBalance) -> None:
        self.balances = balances
        self.calls: List[tuple] = []

    async def get_balances(self, admission_no: str, context: InstitutionContext) -> FeeBalance:
        self.calls.append((admission_no, context))
        return self.balances


def make_balances(**overrides) -> FeeBalance:
    data = {
        "book_fee": {"total": "1500", "paid": "0", "outstanding": "1500"},
        "tuition_fee": {
            "total": "30000",
            "term1": {"paid": "0", "outstanding": "10000"},
            "term2": {"paid": "0", "outstanding": "10000"},
            "term3": {"paid": "0", "outstanding": "10000"},
        },
        "transport_fee": {
            "total": "4000",
            "term1": {"paid": "0", "outstanding": "2000"},
            "term2": {"paid": "0", "outstanding": "2000"},
        },
    }
    data.update(overrides)
    return FeeBalance.model_validate(data)


@pytest.fixture()
def balances() -> FeeBalance:
    return make_balances()


@pytest.fixture()
def rules() -> ValidationRules:
    return ValidationRules(min_amount=Decimal("1"), max_amount=Decimal("1000000"))


@pytest.fixture()
def payment_service() -> FakePaymentService:
    return FakePaymentService()


@pytest.fixture()
def balance_service(balances: FeeBalance) -> FakeFeeBalanceService:
    return FakeFeeBalanceService(balances)


@pytest.fixture()
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture()
def dispatcher(cache_store: InMemoryCacheStore) -> InvalidationDispatcher:
    return InvalidationDispatcher(cache_store)


@pytest_asyncio.fixture()
async def client(
    payment_service: FakePaymentService,
    balance_service: FakeFeeBalanceService,
    dispatcher: InvalidationDispatcher,
    rules: ValidationRules,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app with in-process collaborators."""
    store = SessionStore()
    tracker = LoadingTracker()
    app.dependency_overrides[dependencies.get_session_store] = lambda: store
    app.dependency_overrides[dependencies.get_payment_service] = lambda: payment_service
    app.dependency_overrides[dependencies.get_fee_balance_service] = lambda: balance_service
    app.dependency_overrides[dependencies.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[dependencies.get_loading_tracker] = lambda: tracker
    app.dependency_overrides[dependencies.get_validation_rules] = lambda: rules

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
