import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Config:
    """Shop configuration loaded from environment variables."""

    DB_FILE: str = os.getenv("DB_FILE", "bingsu.db")
    ADMIN_PIN: str = os.getenv("ADMIN_PIN", "2580").strip()
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Bangkok")
    CODE_TTL_HOURS: int = int(os.getenv("CODE_TTL_HOURS", "24"))
    LOW_STOCK_THRESHOLD: int = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))
    SOCKETIO_ASYNC_MODE: str = os.getenv("SOCKETIO_ASYNC_MODE", "eventlet")
    PORT: int = int(os.getenv("PORT", "5000"))
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @staticmethod
    def allowed_origins(extra_origins: List[str] | None = None) -> List[str]:
        env_origins = [o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
        defaults = [
            "http://localhost:3000",
            "http://localhost:5173",
            "https://projectbingsu.vercel.app",
        ]
        merged = env_origins + defaults
        if extra_origins:
            merged.extend(extra_origins)
        seen = set()
        result: List[str] = []
        for origin in merged:
            if origin not in seen:
                seen.add(origin)
                result.append(origin)
        return result

    @classmethod
    def validate(cls) -> None:
        if cls.ENVIRONMENT == "production" and not cls.ADMIN_PIN:
            raise ValueError("ADMIN_PIN environment variable is required")
        if cls.CODE_TTL_HOURS <= 0:
            raise ValueError("CODE_TTL_HOURS must be positive")
