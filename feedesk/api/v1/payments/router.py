"""Payment sessions router: stage items, validate live, submit, cancel."""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from feedesk.api.dependencies import (
    get_dispatcher,
    get_fee_balance_service,
    get_loading_tracker,
    get_payment_service,
    get_session_store,
    get_validation_rules,
)
from feedesk.clients.services import FeeBalanceService, PaymentService
from feedesk.core.enums import PaymentPurpose, SubmissionState
from feedesk.core.exceptions import ServiceError
from feedesk.core.loading import LoadingTracker
from feedesk.invalidation.dispatcher import InvalidationDispatcher
from feedesk.payments.schemas import SubmissionOutcome, ValidationRules
from feedesk.payments.service import PaymentSession, SessionStore

from .schemas import (
    PaymentAvailabilityResponse,
    PaymentItemBody,
    PaymentSessionCreate,
    PaymentSessionResponse,
    PaymentSubmitRequest,
)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def _session_to_response(session: PaymentSession) -> PaymentSessionResponse:
    error = session.coordinator.last_error
    return PaymentSessionResponse(
        id=session.id,
        context=session.context,
        student_id=session.student_id,
        admission_no=session.admission_no,
        items=list(session.items),
        total_amount=session.total,
        validation=session.validation,
        state=session.coordinator.state,
        last_error=error.message if error else None,
    )


def _get_session(store: SessionStore, session_id: str) -> PaymentSession:
    try:
        return store.get(session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/sessions",
    response_model=PaymentSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_session(
    payload: PaymentSessionCreate,
    store: SessionStore = Depends(get_session_store),
    balance_service: FeeBalanceService = Depends(get_fee_balance_service),
    payment_service: PaymentService = Depends(get_payment_service),
    rules: ValidationRules = Depends(get_validation_rules),
    dispatcher: InvalidationDispatcher = Depends(get_dispatcher),
    loading: LoadingTracker = Depends(get_loading_tracker),
) -> PaymentSessionResponse:
    try:
        session = await store.open(
            payload.context,
            payload.student_id,
            payload.admission_no,
            balance_service,
            payment_service,
            rules=rules,
            loading=loading,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    session.on_complete(dispatcher.on_payment_completed)
    return _session_to_response(session)


@router.get("/sessions/{session_id}", response_model=PaymentSessionResponse)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> PaymentSessionResponse:
    return _session_to_response(_get_session(store, session_id))


@router.post(
    "/sessions/{session_id}/items",
    response_model=PaymentSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    session_id: str,
    payload: PaymentItemBody,
    store: SessionStore = Depends(get_session_store),
) -> PaymentSessionResponse:
    session = _get_session(store, session_id)
    try:
        session.add_item(payload.root)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _session_to_response(session)


@router.put("/sessions/{session_id}/items/{item_id}", response_model=PaymentSessionResponse)
async def update_item(
    session_id: str,
    item_id: str,
    payload: PaymentItemBody,
    store: SessionStore = Depends(get_session_store),
) -> PaymentSessionResponse:
    session = _get_session(store, session_id)
    try:
        session.update_item(payload.root.model_copy(update={"id": item_id}))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _session_to_response(session)


@router.delete("/sessions/{session_id}/items/{item_id}", response_model=PaymentSessionResponse)
async def remove_item(
    session_id: str,
    item_id: str,
    store: SessionStore = Depends(get_session_store),
) -> PaymentSessionResponse:
    session = _get_session(store, session_id)
    try:
        session.remove_item(item_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _session_to_response(session)


@router.get("/sessions/{session_id}/availability", response_model=PaymentAvailabilityResponse)
async def get_availability(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> PaymentAvailabilityResponse:
    session = _get_session(store, session_id)
    return PaymentAvailabilityResponse(
        purposes=session.available_purposes(),
        tuition_terms=session.available_terms(PaymentPurpose.TUITION_FEE),
        transport_terms=session.available_terms(PaymentPurpose.TRANSPORT_FEE),
    )


@router.post("/sessions/{session_id}/submit", response_model=SubmissionOutcome)
async def submit_session(
    session_id: str,
    payload: PaymentSubmitRequest,
    store: SessionStore = Depends(get_session_store),
) -> SubmissionOutcome:
    """Validate and submit the staged items. Failed outcomes keep the staged items for a retry."""
    session = _get_session(store, session_id)
    try:
        outcome = await session.submit(payload.remarks)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if outcome.state == SubmissionState.SUCCESS:
        store.discard(session_id)
    return outcome


@router.post("/sessions/{session_id}/acknowledge", response_model=PaymentSessionResponse)
async def acknowledge_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> PaymentSessionResponse:
    session = _get_session(store, session_id)
    session.coordinator.acknowledge()
    return _session_to_response(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Response:
    try:
        store.close(session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
