from functools import lru_cache

from feedesk.clients.services import FeeBalanceService, HttpFeeBalanceService, HttpPaymentService, PaymentService
from feedesk.core.loading import LoadingTracker
from feedesk.invalidation.cache import CacheStore, InMemoryCacheStore
from feedesk.invalidation.dispatcher import InvalidationDispatcher
from feedesk.invalidation.resolver import InvalidationResolver
from feedesk.payments.schemas import ValidationRules
from feedesk.payments.service import SessionStore


@lru_cache()
def get_session_store() -> SessionStore:
    return SessionStore()


@lru_cache()
def get_fee_balance_service() -> FeeBalanceService:
    return HttpFeeBalanceService()


@lru_cache()
def get_payment_service() -> PaymentService:
    return HttpPaymentService()


@lru_cache()
def get_cache_store() -> CacheStore:
    return InMemoryCacheStore()


@lru_cache()
def get_resolver() -> InvalidationResolver:
    return InvalidationResolver()


@lru_cache()
def get_dispatcher() -> InvalidationDispatcher:
    return InvalidationDispatcher(get_cache_store(), get_resolver())


@lru_cache()
def get_loading_tracker() -> LoadingTracker:
    return LoadingTracker()


def get_validation_rules() -> ValidationRules:
    return ValidationRules.from_settings()
