"""Environment-driven configuration.

Every check here is local: whether a code path is reachable is decided from
the environment alone, without touching the network.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_DB_PATH = Path.home() / ".remix" / "tokens.sqlite"

# provider id -> env vars holding its direct-call credential, in lookup order
PROVIDER_CREDENTIAL_ENV: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY", "OPENAI_API_KEY_BACKUP"),
    "gpt-image-1": ("OPENAI_API_KEY", "OPENAI_API_KEY_BACKUP"),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "gemini2flash": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "imagen": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


@dataclass
class Settings:
    gateway_url: str | None = None
    gateway_anon_key: str | None = None
    gateway_token: str | None = None
    credentials: Mapping[str, str] = field(default_factory=dict)
    timeout_s: float = 60.0
    max_retries: int = 2
    retry_base_delay_s: float = 1.0
    save_delay_s: float = 1.5
    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        credentials: dict[str, str] = {}
        for provider, keys in PROVIDER_CREDENTIAL_ENV.items():
            for key in keys:
                value = (env.get(key) or "").strip()
                if value:
                    credentials[provider] = value
                    break
        db_path = (env.get("REMIX_DB_PATH") or "").strip()
        timeout_s = _float(env.get("REMIX_TIMEOUT_S"), 60.0)
        max_retries = int(_float(env.get("REMIX_MAX_RETRIES"), 2))
        base_delay = _float(env.get("REMIX_RETRY_BASE_DELAY_S"), 1.0)
        save_delay = _float(env.get("REMIX_SAVE_DELAY_S"), 1.5)
        return cls(
            gateway_url=(env.get("REMIX_GATEWAY_URL") or "").strip().rstrip("/") or None,
            gateway_anon_key=(env.get("REMIX_GATEWAY_ANON_KEY") or "").strip() or None,
            gateway_token=(env.get("REMIX_GATEWAY_TOKEN") or "").strip() or None,
            credentials=credentials,
            timeout_s=timeout_s,
            max_retries=max(0, max_retries),
            retry_base_delay_s=max(0.0, base_delay),
            save_delay_s=max(0.0, save_delay),
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH,
            log_level=(env.get("REMIX_LOG_LEVEL") or "WARNING").strip().upper(),
        )

    def has_gateway(self) -> bool:
        return bool(self.gateway_url)

    def credential_for(self, provider: str) -> str | None:
        value = self.credentials.get(provider)
        return value or None

    def has_credential(self, provider: str) -> bool:
        return self.credential_for(provider) is not None


def _float(raw: str | None, default: float) -> float:
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default
