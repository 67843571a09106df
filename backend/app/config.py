from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # pricing
    PLATFORM_FEE_RATE: Decimal = Decimal("0.03")
    DEFAULT_GATEWAY_TYPE: str = "square"

    # checkout session
    CART_HYDRATION_GRACE_MS: int = 300
    CHECKOUT_SESSION_TTL_SECONDS: int = 1800
    SESSION_SWEEP_INTERVAL_SECONDS: int = 60
    FINALIZE_LOCK_DIR: str = ""

    # collaborators
    GATEWAY_DIRECTORY_URL: str = ""
    GATEWAY_DIRECTORY_TIMEOUT_SECONDS: int = 2
    PAYMENT_MOCK_DELAY_MS: int = 200

    # client routes returned as redirect targets
    CART_LISTING_ROUTE: str = "/carts"
    CART_ROUTE_TEMPLATE: str = "/cart/{tenant_id}"
    ORDER_HISTORY_ROUTE: str = "/my-orders"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
