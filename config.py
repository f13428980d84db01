import os
import logging
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    """Runtime settings, read from the environment (and .env)"""

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "storefront"
    db_timeout_ms: int = 5000

    # Identity
    jwt_secret: str = "devsecret"

    # Payment gateway
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    currency: str = "INR"
    gateway_timeout: float = 10.0

    # Mail
    mail_api_url: Optional[str] = None
    mail_api_key: Optional[str] = None
    mail_from: str = "Storefront <orders@example.com>"
    mail_timeout: float = 5.0

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def payments_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(name.upper())
            if raw is None or raw == "":
                continue
            if name == "cors_origins":
                values[name] = [o.strip() for o in raw.split(",") if o.strip()]
            else:
                values[name] = raw
        return cls(**values)


def setup_logging(level: str = "INFO"):
    """Configure logging settings"""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        handlers=[logging.StreamHandler()],
    )
