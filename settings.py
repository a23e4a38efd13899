import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    admin_email: str
    jwt_secret: str = "devsecret"
    jwt_algo: str = "HS256"
    jwt_ttl_days: int = 7
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    upload_cloud_name: Optional[str] = None
    upload_preset: Optional[str] = None
    upload_timeout: float = 30.0
    port: int = 8000
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read the process configuration from the environment, once, at startup."""
    return Settings(
        admin_email=os.getenv("ADMIN_EMAIL", "").strip(),
        jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
        jwt_ttl_days=int(os.getenv("JWT_TTL_DAYS", 7)),
        database_url=os.getenv("DATABASE_URL") or None,
        database_name=os.getenv("DATABASE_NAME") or None,
        upload_cloud_name=os.getenv("UPLOAD_CLOUD_NAME") or None,
        upload_preset=os.getenv("UPLOAD_PRESET") or None,
        upload_timeout=float(os.getenv("UPLOAD_TIMEOUT", 30)),
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
