"""Payment staging schemas: line items, balances, rules, results."""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, computed_field, field_validator, model_validator
from typing_extensions import Annotated

from feedesk.core.enums import InstitutionContext, PaymentMethod, PaymentPurpose, SubmissionState


def _new_item_id() -> str:
    return uuid4().hex


def purpose_label(purpose: Any) -> str:
    """'TUITION_FEE' -> 'tuition fee'."""
    return PaymentPurpose(purpose).value.replace("_", " ").lower()


# --- Payment items ---
class _PaymentItemBase(BaseModel):
    id: str = Field(default_factory=_new_item_id)
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH

    model_config = ConfigDict(extra="forbid", frozen=True)


class BookFeeItem(_PaymentItemBase):
    purpose: Literal["BOOK_FEE"] = "BOOK_FEE"


class TuitionFeeItem(_PaymentItemBase):
    purpose: Literal["TUITION_FEE"] = "TUITION_FEE"
    term_number: int


class TransportTermItem(_PaymentItemBase):
    """Transport fee paid per term (schools)."""

    purpose: Literal["TRANSPORT_FEE"] = "TRANSPORT_FEE"
    term_number: int


class TransportMonthItem(_PaymentItemBase):
    """Transport fee paid per calendar month (colleges)."""

    purpose: Literal["TRANSPORT_FEE"] = "TRANSPORT_FEE"
    payment_month: date

    @field_validator("payment_month")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        return value.replace(day=1)


class OtherItem(_PaymentItemBase):
    purpose: Literal["OTHER"] = "OTHER"
    custom_purpose_name: str = Field(..., max_length=255)

    @field_validator("custom_purpose_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("custom_purpose_name is required for OTHER payments")
        return value


def _payment_item_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        purpose = value.get("purpose")
        has_month = value.get("payment_month") is not None
    else:
        purpose = getattr(value, "purpose", None)
        has_month = getattr(value, "payment_month", None) is not None
    purpose = getattr(purpose, "value", purpose)
    if purpose == PaymentPurpose.TRANSPORT_FEE.value:
        return "TRANSPORT_MONTH" if has_month else "TRANSPORT_TERM"
    return purpose


PaymentItem = Annotated[
    Union[
        Annotated[BookFeeItem, Tag("BOOK_FEE")],
        Annotated[TuitionFeeItem, Tag("TUITION_FEE")],
        Annotated[TransportTermItem, Tag("TRANSPORT_TERM")],
        Annotated[TransportMonthItem, Tag("TRANSPORT_MONTH")],
        Annotated[OtherItem, Tag("OTHER")],
    ],
    Discriminator(_payment_item_tag),
]

# Items whose removal and payment must follow term order.
TERM_ITEM_TYPES = (TuitionFeeItem, TransportTermItem)


# --- Fee balances (read-only snapshot) ---
class BalanceEntry(BaseModel):
    paid: Decimal = Decimal("0")
    outstanding: Decimal = Decimal("0")


class BookFeeBalance(BalanceEntry):
    total: Decimal = Decimal("0")


class TermFeeBalance(BaseModel):
    """Balance broken down by term and, for monthly transport, by month."""

    total: Decimal = Decimal("0")
    terms: Dict[int, BalanceEntry] = Field(default_factory=dict)
    months: Dict[date, BalanceEntry] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fold_term_keys(cls, data: Any) -> Any:
        # Accept the flat {"term1": {...}, "term2": {...}} shape.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        terms = dict(data.get("terms") or {})
        for key in [k for k in data if isinstance(k, str) and k.startswith("term") and k[4:].isdigit()]:
            terms[int(key[4:])] = data.pop(key)
        data["terms"] = terms
        return data

    @field_validator("months", mode="before")
    @classmethod
    def _normalise_months(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        out = {}
        for key, entry in value.items():
            if isinstance(key, str) and len(key) == 7:
                key = f"{key}-01"
            out[key] = entry
        return out

    def next_unpaid_term(self) -> Optional[int]:
        unpaid = [t for t, entry in self.terms.items() if entry.outstanding > 0]
        return min(unpaid) if unpaid else None

    def outstanding_months(self) -> List[date]:
        return sorted(m.replace(day=1) for m, entry in self.months.items() if entry.outstanding > 0)

    def month_entry(self, month: date) -> Optional[BalanceEntry]:
        for key, entry in self.months.items():
            if key.replace(day=1) == month.replace(day=1):
                return entry
        return None


class FeeBalance(BaseModel):
    book_fee: BookFeeBalance = Field(default_factory=BookFeeBalance)
    tuition_fee: TermFeeBalance = Field(default_factory=TermFeeBalance)
    transport_fee: TermFeeBalance = Field(default_factory=TermFeeBalance)

    def for_purpose(self, purpose: PaymentPurpose) -> Optional[TermFeeBalance]:
        if purpose == PaymentPurpose.TUITION_FEE:
            return self.tuition_fee
        if purpose == PaymentPurpose.TRANSPORT_FEE:
            return self.transport_fee
        return None

    def entry_for(self, item: "_PaymentItemBase") -> Optional[BalanceEntry]:
        """Balance entry a staged item pays into; None for OTHER or unknown periods."""
        if isinstance(item, BookFeeItem):
            return self.book_fee
        if isinstance(item, TERM_ITEM_TYPES):
            return self.for_purpose(item.purpose).terms.get(item.term_number)
        if isinstance(item, TransportMonthItem):
            return self.transport_fee.month_entry(item.payment_month)
        return None


# --- Batch ---
class MultiplePaymentData(BaseModel):
    student_id: str
    admission_no: str
    items: List[PaymentItem] = Field(default_factory=list)
    remarks: Optional[str] = None

    @computed_field
    @property
    def total_amount(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0"))


# --- Validation ---
class ValidationRules(BaseModel):
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    decimals: int = 2
    allow_overpayment: bool = False
    term_sequence: bool = True
    duplicate_prevention: bool = True
    book_fee_first: bool = False
    max_terms: Dict[PaymentPurpose, int] = Field(
        default_factory=lambda: {PaymentPurpose.TUITION_FEE: 3, PaymentPurpose.TRANSPORT_FEE: 2}
    )
    custom_purpose_min_length: int = 3
    custom_purpose_max_length: int = 100

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: Any = None, **overrides: Any) -> "ValidationRules":
        if settings is None:
            from feedesk.core.config import settings
        values = {
            "min_amount": settings.payment_min_amount,
            "max_amount": settings.payment_max_amount,
            "decimals": settings.payment_amount_decimals,
            "allow_overpayment": settings.allow_overpayment,
            "book_fee_first": settings.book_fee_first,
        }
        values.update(overrides)
        return cls(**values)


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors, warnings=warnings or [])


class TermAvailability(BaseModel):
    term: int
    available: bool
    paid: bool
    outstanding: Decimal


class PurposeAvailability(BaseModel):
    purpose: PaymentPurpose
    available: bool
    reason: Optional[str] = None
    outstanding_amount: Decimal = Decimal("0")


# --- Submission ---
class PaymentReceipt(BaseModel):
    reference: str
    receipt_no: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class PaymentCompleted(BaseModel):
    admission_no: str
    context: InstitutionContext
    purposes: List[PaymentPurpose]
    reference: str
    total_amount: Decimal


class SubmissionOutcome(BaseModel):
    state: SubmissionState
    reference: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
