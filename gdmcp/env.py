from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .constants import AUTH_MODE, LOGGER

REQUIRED_ENV = (
    "GOOGLE_OAUTH_CLIENT_ID",
    "GOOGLE_OAUTH_CLIENT_SECRET",
    "GDMCP_PUBLIC_URL",
)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(
            f"Missing required environment variables for {AUTH_MODE}: {', '.join(missing)}"
        )

    public_url = os.getenv("GDMCP_PUBLIC_URL", "").strip()
    parsed_public_url = urlparse(public_url)
    if parsed_public_url.scheme != "https" or not parsed_public_url.netloc:
        raise RuntimeError(
            "GDMCP_PUBLIC_URL must be a valid public HTTPS URL (for example: "
            "https://gdrive-mcp.example.com)."
        )

    get_env_int("GDMCP_STATE_TTL_SECONDS", 600)
    get_env_float("GDMCP_API_TIMEOUT", 30.0)

    if not os.getenv("GDMCP_TOKEN_ENCRYPTION_KEY", "").strip():
        LOGGER.warning(
            "GDMCP_TOKEN_ENCRYPTION_KEY is not set; Google credentials are stored unencrypted."
        )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("GDMCP_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
        logging.getLogger("gdmcp.auth").setLevel(logging.INFO)
    return debug_enabled
