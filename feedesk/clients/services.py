"""
External collaborators: fee balance lookup and payment submission.

Both are consumed through small protocols; the HTTP implementations talk to
the institute backend with httpx. Timeouts are owned here, not by the core.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError
from typing_extensions import Protocol

from feedesk.core.config import settings
from feedesk.core.enums import InstitutionContext
from feedesk.core.exceptions import NotFoundError, PaymentSystemError
from feedesk.payments.schemas import FeeBalance, MultiplePaymentData, PaymentReceipt

logger = logging.getLogger(__name__)


class FeeBalanceService(Protocol):
    async def get_balances(self, admission_no: str, context: InstitutionContext) -> FeeBalance:
        ...


class PaymentService(Protocol):
    async def submit(self, data: MultiplePaymentData) -> PaymentReceipt:
        ...


class _HttpService:
    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = httpx.Timeout(timeout if timeout is not None else settings.http_timeout_seconds)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, f"{self.base_url}{path}", **kwargs)


class HttpFeeBalanceService(_HttpService):
    def __init__(self, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(base_url or settings.fee_balance_service_url, **kwargs)

    async def get_balances(self, admission_no: str, context: InstitutionContext) -> FeeBalance:
        path = f"/api/{InstitutionContext(context).value}/fee-balances/{admission_no}"
        try:
            response = await self._request("GET", path)
        except httpx.HTTPError as e:
            logger.error("Fee balance lookup failed for %s: %s", admission_no, e)
            raise PaymentSystemError("Could not load fee balances", cause=e)
        if response.status_code == 404:
            raise NotFoundError(f"No fee balances for admission {admission_no}")
        if response.is_error:
            raise PaymentSystemError(f"Fee balance service returned {response.status_code}")
        try:
            return FeeBalance.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Malformed fee balance response for %s: %s", admission_no, e)
            raise PaymentSystemError("Invalid fee balance response", cause=e)


class HttpPaymentService(_HttpService):
    def __init__(self, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(base_url or settings.payment_service_url, **kwargs)

    async def submit(self, data: MultiplePaymentData) -> PaymentReceipt:
        path = f"/api/fees/payments/{data.admission_no}"
        try:
            response = await self._request("POST", path, json=data.model_dump(mode="json"))
        except httpx.HTTPError as e:
            logger.error("Payment submission failed for %s: %s", data.admission_no, e)
            raise PaymentSystemError("Payment service unreachable", cause=e)
        if response.is_error:
            raise PaymentSystemError(f"Payment rejected ({response.status_code}): {_detail(response)}")
        try:
            return PaymentReceipt.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Malformed payment receipt for %s: %s", data.admission_no, e)
            raise PaymentSystemError("Invalid payment service response", cause=e)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, dict) and isinstance(detail.get("message"), str):
            return detail["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
    return response.reason_phrase or "unknown error"
