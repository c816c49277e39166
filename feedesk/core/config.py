import logging
from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    payment_service_url: str = Field("http://localhost:8001", alias="PAYMENT_SERVICE_URL")
    fee_balance_service_url: str = Field("http://localhost:8001", alias="FEE_BALANCE_SERVICE_URL")
    http_timeout_seconds: float = Field(30.0, alias="HTTP_TIMEOUT_SECONDS")

    payment_min_amount: Optional[Decimal] = Field(Decimal("1"), alias="PAYMENT_MIN_AMOUNT")
    payment_max_amount: Optional[Decimal] = Field(Decimal("1000000"), alias="PAYMENT_MAX_AMOUNT")
    payment_amount_decimals: int = Field(2, alias="PAYMENT_AMOUNT_DECIMALS")
    allow_overpayment: bool = Field(False, alias="ALLOW_OVERPAYMENT")
    book_fee_first: bool = Field(False, alias="BOOK_FEE_FIRST")
    payment_session_ttl_seconds: float = Field(1800.0, alias="PAYMENT_SESSION_TTL_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
