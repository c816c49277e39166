"""Payment session request and response schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, RootModel

from feedesk.core.enums import InstitutionContext, SubmissionState
from feedesk.payments.schemas import PaymentItem, PurposeAvailability, TermAvailability, ValidationResult


class PaymentSessionCreate(BaseModel):
    context: InstitutionContext
    student_id: str = Field(..., min_length=1)
    admission_no: str = Field(..., min_length=1, max_length=50)


class PaymentSessionResponse(BaseModel):
    id: str
    context: InstitutionContext
    student_id: str
    admission_no: str
    items: List[PaymentItem]
    total_amount: Decimal
    validation: ValidationResult
    state: SubmissionState
    last_error: Optional[str] = None


class PaymentAvailabilityResponse(BaseModel):
    purposes: List[PurposeAvailability]
    tuition_terms: List[TermAvailability]
    transport_terms: List[TermAvailability]


class PaymentSubmitRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=500)


class PaymentItemBody(RootModel[PaymentItem]):
    """A single payment line; the variant is picked from purpose (and payment_month for transport)."""
