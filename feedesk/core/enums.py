from enum import Enum


class InstitutionContext(str, Enum):
    SCHOOL = "school"
    COLLEGE = "college"


class PaymentPurpose(str, Enum):
    BOOK_FEE = "BOOK_FEE"
    TUITION_FEE = "TUITION_FEE"
    TRANSPORT_FEE = "TRANSPORT_FEE"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    UPI = "UPI"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    ONLINE = "ONLINE"


class SubmissionState(str, Enum):
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    SUBMITTING = "SUBMITTING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class EntityType(str, Enum):
    STUDENT = "student"
    RESERVATION = "reservation"
    ENROLLMENT = "enrollment"
    ATTENDANCE = "attendance"
    FEE = "fee"
    INCOME = "income"
    EXPENDITURE = "expenditure"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PAYMENT = "payment"
