# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, Optional
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./grocery_checkout.db"

    # Checkout pricing rules
    FREE_DELIVERY_THRESHOLD: float = 499.0
    CURRENCY: str = "INR"
    # Reject a cart line whose catalog price drifted more than this percentage
    # since it was added. None accepts the current price silently.
    PRICE_CHANGE_TOLERANCE_PERCENT: Optional[float] = None

    # Online payment window
    PENDING_ONLINE_ORDER_TTL_MINUTES: int = 15
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    RAZORPAY_API_URL: str = "https://api.razorpay.com"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""

    FRONTEND_URL: str = "http://localhost:3000"

    class Config:
        env_file: ClassVar[str] = str(env_path)

settings = Settings()
