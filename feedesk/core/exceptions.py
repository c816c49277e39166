from typing import List, Optional, Sequence

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentValidationError(ServiceError):
    """User-correctable validation failure. Stored as the coordinator's last error, never raised by the validator."""

    def __init__(self, errors: Sequence[str]) -> None:
        super().__init__("Payment validation failed", status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.errors: List[str] = list(errors)


class SequenceViolationError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class DuplicateItemError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ItemNotFoundError(ServiceError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"Payment item {item_id} not found", status.HTTP_404_NOT_FOUND)
        self.item_id = item_id


class BusyError(ServiceError):
    def __init__(self, message: str = "A payment submission is already in progress") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class PaymentSystemError(ServiceError):
    """Transport or backend failure while submitting, including aborts."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
        self.cause = cause


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class SessionNotFoundError(ServiceError):
    def __init__(self, session_id: str) -> None:
        super().__init__("Payment session not found", status.HTTP_404_NOT_FOUND)
        self.session_id = session_id
