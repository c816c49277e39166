"""Payment validator: stateless checks over a staged batch. Never raises; returns messages."""

from collections import Counter, defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from feedesk.core.enums import PaymentPurpose

from .schemas import (
    TERM_ITEM_TYPES,
    BalanceEntry,
    BookFeeItem,
    FeeBalance,
    MultiplePaymentData,
    OtherItem,
    PaymentItem,
    PurposeAvailability,
    TermAvailability,
    TransportMonthItem,
    ValidationResult,
    ValidationRules,
    purpose_label,
)

TERM_PURPOSES = (PaymentPurpose.TUITION_FEE, PaymentPurpose.TRANSPORT_FEE)


def _money(amount: Decimal) -> str:
    return f"₹{amount:,}"


def _month(value: date) -> str:
    return value.strftime("%B %Y")


def _decimal_places(amount: Decimal) -> int:
    exponent = amount.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def _terms_for(items: Iterable[PaymentItem], purpose: PaymentPurpose) -> List[int]:
    return sorted({i.term_number for i in items if isinstance(i, TERM_ITEM_TYPES) and i.purpose == purpose})


def _duplicate_key(item: PaymentItem) -> Tuple:
    return (
        item.purpose,
        getattr(item, "term_number", None),
        getattr(item, "payment_month", None),
        getattr(item, "custom_purpose_name", None),
    )


# --- Line checks ---
def validate_amount(amount: Decimal, rules: ValidationRules) -> ValidationResult:
    errors: List[str] = []
    if amount <= 0:
        errors.append("Payment amount must be greater than 0")
    if rules.min_amount is not None and amount < rules.min_amount:
        errors.append(f"Payment amount must be at least {_money(rules.min_amount)}")
    if rules.max_amount is not None and amount > rules.max_amount:
        errors.append(f"Payment amount cannot exceed {_money(rules.max_amount)}")
    if _decimal_places(amount) > rules.decimals:
        errors.append(f"Payment amount can have maximum {rules.decimals} decimal places")
    return ValidationResult.from_errors(errors)


def validate_custom_purpose_name(item: PaymentItem, rules: ValidationRules) -> ValidationResult:
    if not isinstance(item, OtherItem):
        return ValidationResult()
    errors: List[str] = []
    name = (item.custom_purpose_name or "").strip()
    if not name:
        errors.append("Custom purpose name is required for OTHER payments")
    elif len(name) < rules.custom_purpose_min_length:
        errors.append(f"Custom purpose name must be at least {rules.custom_purpose_min_length} characters long")
    elif len(name) > rules.custom_purpose_max_length:
        errors.append(f"Custom purpose name cannot exceed {rules.custom_purpose_max_length} characters")
    return ValidationResult.from_errors(errors)


def validate_term_number(item: PaymentItem, rules: ValidationRules) -> ValidationResult:
    if not isinstance(item, TERM_ITEM_TYPES):
        return ValidationResult()
    max_terms = rules.max_terms.get(PaymentPurpose(item.purpose), 0)
    if not 1 <= item.term_number <= max_terms:
        return ValidationResult.from_errors([f"Term number must be between 1 and {max_terms}"])
    return ValidationResult()


# --- Batch checks ---
def validate_term_sequence(
    items: Sequence[PaymentItem],
    rules: ValidationRules,
    balances: Optional[FeeBalance] = None,
) -> ValidationResult:
    """
    Staged terms of one purpose must be contiguous. With balances, they must
    also start at the next unpaid term and never include a settled term.
    Monthly transport follows the same rule over outstanding months.
    """
    if not rules.term_sequence:
        return ValidationResult()

    errors: List[str] = []
    for purpose in TERM_PURPOSES:
        terms = _terms_for(items, purpose)
        if not terms:
            continue
        label = purpose_label(purpose).capitalize()
        if any(b - a != 1 for a, b in zip(terms, terms[1:])):
            errors.append(f"{label} terms must be paid sequentially (no gaps between terms)")

        balance = balances.for_purpose(purpose) if balances else None
        if balance is None or not balance.terms:
            continue
        settled = [t for t in terms if t in balance.terms and balance.terms[t].outstanding <= 0]
        if settled:
            errors.append(f"{label} term {settled[0]} is already paid")
            continue
        next_term = balance.next_unpaid_term()
        if next_term is None:
            errors.append(f"No {purpose_label(purpose)} terms are outstanding")
        elif terms[0] != next_term:
            errors.append(f"{label} must be paid sequentially starting from term {next_term}")

    months = sorted({i.payment_month for i in items if isinstance(i, TransportMonthItem)})
    if months and balances and balances.transport_fee.months:
        outstanding = balances.transport_fee.outstanding_months()
        not_due = [m for m in months if m not in outstanding]
        if not_due:
            errors.append(f"No outstanding transport fee for {_month(not_due[0])}")
        elif months != outstanding[: len(months)]:
            errors.append(f"Transport fee months must be paid in order starting from {_month(outstanding[0])}")

    return ValidationResult.from_errors(errors)


def validate_balance_coverage(
    items: Sequence[PaymentItem],
    balances: Optional[FeeBalance],
) -> ValidationResult:
    """Term and month lines must pay into a period the balance carries, in the shape it is billed."""
    if balances is None:
        return ValidationResult()

    errors: List[str] = []
    for item in items:
        if isinstance(item, TERM_ITEM_TYPES):
            balance = balances.for_purpose(item.purpose)
            label = purpose_label(item.purpose)
            if not balance.terms and balance.months:
                errors.append(
                    f"{label.capitalize()} is billed by month; select a month instead of term {item.term_number}"
                )
            elif item.term_number not in balance.terms:
                errors.append(f"No {label} balance for term {item.term_number}")
        elif isinstance(item, TransportMonthItem):
            balance = balances.transport_fee
            month = _month(item.payment_month)
            if not balance.months and balance.terms:
                errors.append(f"Transport fee is billed by term; select a term instead of {month}")
            elif balance.month_entry(item.payment_month) is None:
                errors.append(f"No transport fee balance for {month}")
    return ValidationResult.from_errors(list(dict.fromkeys(errors)))


def validate_duplicates(items: Sequence[PaymentItem], rules: ValidationRules) -> ValidationResult:
    if not rules.duplicate_prevention:
        return ValidationResult()

    errors: List[str] = []
    counts = Counter(_duplicate_key(item) for item in items)
    for (purpose, term_number, payment_month, custom_name), count in counts.items():
        if count < 2:
            continue
        if purpose == PaymentPurpose.BOOK_FEE:
            errors.append("Duplicate book fee payment: book fee can only be paid once per transaction")
        elif purpose == PaymentPurpose.OTHER:
            errors.append(f"Duplicate custom purpose payment: '{custom_name}' is added more than once")
        elif payment_month is not None:
            errors.append(f"Duplicate transport fee payment for {_month(payment_month)}")
        else:
            errors.append(f"Duplicate {purpose_label(purpose)} payment for term {term_number}")
    return ValidationResult.from_errors(errors)


def validate_overpayment(
    items: Sequence[PaymentItem],
    balances: Optional[FeeBalance],
    rules: ValidationRules,
) -> ValidationResult:
    """Staged amounts per book fee, term or month must not exceed what is outstanding."""
    if balances is None:
        return ValidationResult()

    staged: Dict[Tuple, Decimal] = defaultdict(Decimal)
    entries: Dict[Tuple, BalanceEntry] = {}
    labels: Dict[Tuple, str] = {}
    for item in items:
        entry = balances.entry_for(item)
        if entry is None:
            continue
        key = _duplicate_key(item)
        staged[key] += item.amount
        entries[key] = entry
        if isinstance(item, BookFeeItem):
            labels[key] = "Book fee"
        elif isinstance(item, TransportMonthItem):
            labels[key] = f"Transport fee for {_month(item.payment_month)}"
        else:
            labels[key] = f"{purpose_label(item.purpose).capitalize()} term {item.term_number}"

    errors: List[str] = []
    warnings: List[str] = []
    for key, amount in staged.items():
        outstanding = entries[key].outstanding
        if amount > outstanding and not rules.allow_overpayment:
            errors.append(
                f"{labels[key]} payment of {_money(amount)} exceeds outstanding {_money(outstanding)}"
            )
        elif Decimal("0") < amount < outstanding:
            warnings.append(
                f"{labels[key]} will remain partially paid ({_money(outstanding - amount)} outstanding)"
            )
    return ValidationResult.from_errors(errors, warnings)


def validate_business_rules(
    items: Sequence[PaymentItem],
    rules: ValidationRules,
    balances: Optional[FeeBalance] = None,
) -> ValidationResult:
    if not rules.book_fee_first:
        return ValidationResult()

    has_book_fee = any(isinstance(i, BookFeeItem) for i in items)
    if balances is not None:
        if balances.book_fee.outstanding > 0 and not has_book_fee:
            return ValidationResult.from_errors(["Book fee must be paid before processing any other payments"])
        return ValidationResult()

    has_term_fee = any(i.purpose in TERM_PURPOSES for i in items)
    if has_term_fee and not has_book_fee:
        return ValidationResult.from_errors(["Book fee must be paid before tuition or transport fee payments"])
    return ValidationResult()


def validate_form(
    data: MultiplePaymentData,
    rules: ValidationRules,
    balances: Optional[FeeBalance] = None,
) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if not data.items:
        errors.append("At least one payment item is required")

    for index, item in enumerate(data.items, start=1):
        for result in (
            validate_amount(item.amount, rules),
            validate_custom_purpose_name(item, rules),
            validate_term_number(item, rules),
        ):
            errors.extend(f"Payment {index}: {error}" for error in result.errors)

    for result in (
        validate_duplicates(data.items, rules),
        validate_balance_coverage(data.items, balances),
        validate_term_sequence(data.items, rules, balances),
        validate_overpayment(data.items, balances, rules),
        validate_business_rules(data.items, rules, balances),
    ):
        errors.extend(result.errors)
        warnings.extend(result.warnings)

    if data.total_amount <= 0:
        errors.append("Total amount must be greater than 0")

    return ValidationResult.from_errors(errors, warnings)


# --- Availability ---
def get_available_terms(
    purpose: PaymentPurpose,
    balances: FeeBalance,
    rules: ValidationRules,
) -> List[TermAvailability]:
    """
    Terms of a purpose with their payability. Term 1 is available whenever it
    has an outstanding amount; later terms once the previous term is settled,
    or when they are themselves partially paid.
    """
    balance = balances.for_purpose(purpose)
    if balance is None:
        return []
    out: List[TermAvailability] = []
    for term in range(1, rules.max_terms.get(purpose, 0) + 1):
        entry = balance.terms.get(term) or BalanceEntry()
        paid = entry.paid > 0
        previous_settled = term == 1 or out[-1].outstanding <= 0
        partially_paid = paid and entry.outstanding > 0
        out.append(
            TermAvailability(
                term=term,
                available=entry.outstanding > 0 and (previous_settled or partially_paid),
                paid=paid,
                outstanding=entry.outstanding,
            )
        )
    return out


def get_purpose_availability(
    balances: FeeBalance,
    rules: ValidationRules,
    staged: Sequence[PaymentItem] = (),
) -> List[PurposeAvailability]:
    """Which purposes the operator may still add, given balances and what is already staged."""
    book_pending = balances.book_fee.outstanding > 0
    book_staged = any(isinstance(i, BookFeeItem) for i in staged)
    blocked_by_book = rules.book_fee_first and book_pending and not book_staged

    out: List[PurposeAvailability] = []
    if book_staged:
        out.append(PurposeAvailability(
            purpose=PaymentPurpose.BOOK_FEE, available=False,
            reason="Book fee is already added", outstanding_amount=balances.book_fee.outstanding,
        ))
    else:
        out.append(PurposeAvailability(
            purpose=PaymentPurpose.BOOK_FEE,
            available=book_pending,
            reason=None if book_pending else "Book fee is already paid in full",
            outstanding_amount=balances.book_fee.outstanding,
        ))

    for purpose in TERM_PURPOSES:
        label = purpose_label(purpose)
        balance = balances.for_purpose(purpose)
        terms = get_available_terms(purpose, balances, rules)
        staged_terms = set(_terms_for(staged, purpose))
        if balance.terms:
            outstanding = sum((t.outstanding for t in terms), Decimal("0"))
            open_terms = [t for t in terms if t.outstanding > 0 and t.term not in staged_terms]
            available = any(t.available for t in terms) and bool(open_terms)
        else:
            # Month-based balances: available while any month is outstanding.
            outstanding = sum((e.outstanding for e in balance.months.values()), Decimal("0"))
            available = outstanding > 0
        reason = None
        if blocked_by_book:
            available, reason = False, f"Book fee must be selected first before {label}"
        elif not available:
            reason = f"No {label} terms available for payment"
        out.append(PurposeAvailability(
            purpose=purpose, available=available, reason=reason, outstanding_amount=outstanding,
        ))

    out.append(PurposeAvailability(
        purpose=PaymentPurpose.OTHER,
        available=not blocked_by_book,
        reason="Book fee must be selected first before other payments" if blocked_by_book else None,
    ))
    return out
