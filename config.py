import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

class Config:
    API_BASE_URL = os.getenv("STOREFRONT_API_BASE_URL", "http://localhost:8000/api/customer")
    REQUEST_TIMEOUT = float(os.getenv("STOREFRONT_REQUEST_TIMEOUT", 15))

    TOKEN_STORE_PATH = os.getenv("STOREFRONT_TOKEN_STORE", str(Path.home() / ".storefront" / "session.json"))
    TOKEN_KEY = os.getenv("STOREFRONT_TOKEN_KEY", "customerToken")
    RENEWAL_INTERVAL_HOURS = float(os.getenv("STOREFRONT_RENEWAL_HOURS", 10))

    FREE_DELIVERY_THRESHOLD = os.getenv("FREE_DELIVERY_THRESHOLD", "500")
    FLAT_DELIVERY_FEE = os.getenv("FLAT_DELIVERY_FEE", "50")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", '%(asctime)s - %(name)s - %(levelname)s - %(message)s')


@dataclass(frozen=True)
class GatewaySettings:
    """게이트웨이에 전달되는 불변 설정"""
    base_url: str
    timeout: float = 15.0

    @classmethod
    def from_config(cls, cfg: "Config") -> "GatewaySettings":
        return cls(base_url=cfg.API_BASE_URL.rstrip("/"), timeout=cfg.REQUEST_TIMEOUT)

config = Config()
