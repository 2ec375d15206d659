from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if _ENV_PATH.exists():
    load_dotenv(dotenv_path=_ENV_PATH)
else:  # fallback when launched from inside backend/
    load_dotenv()


LIVEKIT_SETUP_URL = "https://livekit.io/getting-started"
DEFAULT_AGENT_NAME = "voice-assistant"


class Settings:
    DATA_ROOT = Path(os.getenv("LIVECALL_DATA_ROOT", "data"))
    SQLITE_PATH = Path(os.getenv("LIVECALL_SQLITE_PATH") or DATA_ROOT / "calls.db")

    APP_HOST = os.getenv("HOST", "0.0.0.0")
    APP_PORT = int(os.getenv("PORT", "3001"))

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # LiveKit transport
    LIVEKIT_URL = os.getenv("LIVEKIT_URL", "").strip()
    LIVEKIT_API_KEY = os.getenv("LIVEKIT_API_KEY", "").strip()
    LIVEKIT_API_SECRET = os.getenv("LIVEKIT_API_SECRET", "").strip()
    LIVEKIT_AGENT_NAME = (os.getenv("LIVEKIT_AGENT_NAME", "") or "").strip() or DEFAULT_AGENT_NAME
    try:
        LIVEKIT_HTTP_TIMEOUT_SECONDS = float(os.getenv("LIVEKIT_HTTP_TIMEOUT_SECONDS", "10"))
    except ValueError:
        LIVEKIT_HTTP_TIMEOUT_SECONDS = 10.0

    # Client-side reconciliation loop
    try:
        CALL_STATUS_POLL_INTERVAL_SECONDS = float(os.getenv("CALL_STATUS_POLL_INTERVAL_SECONDS", "5"))
    except ValueError:
        CALL_STATUS_POLL_INTERVAL_SECONDS = 5.0

    # Supabase (optional; SQLite is used when unset)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "").strip()
    SUPABASE_CALLS_TABLE = os.getenv("SUPABASE_CALLS_TABLE", "calls").strip() or "calls"

    # Logging controls
    LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    if LOG_LEVEL not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
        LOG_LEVEL = "INFO"
    LOG_PRETTY = (
        (os.getenv("LOG_PRETTY", "true") or "true").strip().lower() not in {"0", "false", "no", "off"}
    )
    _log_color = (os.getenv("LOG_COLOR", "auto") or "auto").strip().lower()
    if _log_color in {"1", "true", "yes", "on", "always"}:
        LOG_COLOR: Optional[bool] = True
    elif _log_color in {"0", "false", "no", "off", "never"}:
        LOG_COLOR = False
    else:
        LOG_COLOR = None

    LOG_SKIP_REQUEST_PATHS = tuple(
        path.strip()
        for path in os.getenv("LOG_SKIP_REQUEST_PATHS", "/health").split(",")
        if path.strip()
    )


settings = Settings()


@dataclass(frozen=True)
class LiveKitConfig:
    """Transport credentials handed to the LiveKit service at construction."""

    url: str = ""
    api_key: str = ""
    api_secret: str = ""
    agent_name: str = DEFAULT_AGENT_NAME

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "LiveKitConfig":
        source = source or settings
        return cls(
            url=(source.LIVEKIT_URL or "").strip(),
            api_key=(source.LIVEKIT_API_KEY or "").strip(),
            api_secret=(source.LIVEKIT_API_SECRET or "").strip(),
            agent_name=(source.LIVEKIT_AGENT_NAME or "").strip() or DEFAULT_AGENT_NAME,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key and self.api_secret)

    def missing_settings(self) -> List[str]:
        missing: List[str] = []
        if not self.url:
            missing.append("LIVEKIT_URL")
        if not self.api_key:
            missing.append("LIVEKIT_API_KEY")
        if not self.api_secret:
            missing.append("LIVEKIT_API_SECRET")
        return missing

    @property
    def api_base_url(self) -> str:
        # Server API lives on the same host as the signalling socket.
        url = self.url.rstrip("/")
        if url.startswith("wss://"):
            return "https://" + url[len("wss://") :]
        if url.startswith("ws://"):
            return "http://" + url[len("ws://") :]
        return url
