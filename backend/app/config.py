# backend/app/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # Loads .env automatically

DEFAULT_BACKEND_URL = "http://insforge:7130"

# Development fallback only. Deployments must set ACCESS_API_KEY.
DEFAULT_ACCESS_API_KEY = "ik_local_development_key"


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class Settings:
    backend_url: str
    access_api_key: str
    service_role_key: Optional[str]
    gemini_api_key: Optional[str]
    allowed_origin: str = "*"
    request_timeout: float = 30.0


def load_settings() -> Settings:
    """
    Read settings from the environment (and .env, if present).

    The service role key is the elevated credential used for anonymous
    inserts; both variable names the hosting platforms use are accepted.
    """
    return Settings(
        backend_url=(_env("BACKEND_INTERNAL_URL") or DEFAULT_BACKEND_URL).rstrip("/"),
        access_api_key=_env("ACCESS_API_KEY") or DEFAULT_ACCESS_API_KEY,
        service_role_key=_env("SERVICE_ROLE_KEY") or _env("SUPABASE_SERVICE_ROLE_KEY"),
        gemini_api_key=_env("GOOGLE_API_KEY") or _env("GEMINI_API_KEY"),
        allowed_origin=_env("ALLOWED_ORIGIN") or "*",
        request_timeout=float(_env("BACKEND_TIMEOUT_SECONDS") or 30.0),
    )
