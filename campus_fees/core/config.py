from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    razorpay_key_id: Optional[str] = Field(None, alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: Optional[str] = Field(None, alias="RAZORPAY_KEY_SECRET")
    razorpay_base_url: str = Field("https://api.razorpay.com", alias="RAZORPAY_BASE_URL")
    gateway_timeout_seconds: float = Field(15.0, alias="GATEWAY_TIMEOUT_SECONDS")

    payment_currency: str = Field("INR", alias="PAYMENT_CURRENCY")
    convenience_fee_rate: Decimal = Field(Decimal("0.03"), alias="CONVENIENCE_FEE_RATE")
    # Pending online orders younger than this block overlapping orders for the same fees.
    order_hold_minutes: int = Field(15, alias="ORDER_HOLD_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
