"""Centralized configuration for the concierge agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/concierge/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/concierge/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /concierge/{name} (AWS)."
    )


def _optional_secret(name: str) -> str | None:
    """Like ``_require_env`` but returns ``None`` when the secret is absent."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5-20250929")
MAX_TOKENS: int = int(os.getenv("MAX_TOKENS", "4096"))

# ── Agent loop bounds ───────────────────────────────────────────────
MAX_AGENT_ITERATIONS: int = int(os.getenv("MAX_AGENT_ITERATIONS", "20"))
TURN_TIMEOUT_SECONDS: float = float(os.getenv("TURN_TIMEOUT_SECONDS", "180"))
HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "50"))

# ── Browser sandbox ─────────────────────────────────────────────────
BROWSER_MAX_ACTIONS: int = int(os.getenv("BROWSER_MAX_ACTIONS", "30"))
NAVIGATION_TIMEOUT_MS: int = int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000"))
PAGE_TEXT_MAX_LENGTH: int = int(os.getenv("PAGE_TEXT_MAX_LENGTH", "8000"))
BROWSER_EXECUTABLE_PATH: str | None = os.getenv("BROWSER_EXECUTABLE_PATH") or None

# ── Web search ──────────────────────────────────────────────────────
BRAVE_SEARCH_API_KEY: str | None = _optional_secret("BRAVE_SEARCH_API_KEY")
SERP_API_KEY: str | None = _optional_secret("SERP_API_KEY")

# ── Twilio voice ────────────────────────────────────────────────────
TWILIO_ACCOUNT_SID: str | None = _optional_secret("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN: str | None = _optional_secret("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER: str | None = os.getenv("TWILIO_PHONE_NUMBER") or None

# ── SMTP email ──────────────────────────────────────────────────────
SMTP_HOST: str | None = os.getenv("SMTP_HOST") or None
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER: str | None = os.getenv("SMTP_USER") or None
SMTP_PASSWORD: str | None = _optional_secret("SMTP_PASSWORD")
SMTP_FROM: str | None = os.getenv("SMTP_FROM") or SMTP_USER

# ── Customer profiles (in-memory context store seed) ────────────────
CUSTOMER_PROFILES_PATH: str | None = os.getenv("CUSTOMER_PROFILES_PATH") or None

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
