"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field


class PairingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: str | None = None  # "package.module:attribute"
    session_root: str = "."
    timeout_seconds: float = Field(default=30.0, gt=0)
    grace_seconds: float = Field(default=3.0, ge=0)
    rate_limit: int = Field(default=60, ge=0)  # 0 disables rate limiting
    rate_window_seconds: int = Field(default=60, gt=0)
    audit_log_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PairingSettings:
        env = os.environ if environ is None else environ
        return cls(
            backend=env.get("PAIRING_BACKEND") or None,
            session_root=env.get("SESSION_ROOT", "."),
            timeout_seconds=float(env.get("PAIRING_TIMEOUT_SECONDS", "30")),
            grace_seconds=float(env.get("PAIRING_GRACE_SECONDS", "3")),
            rate_limit=int(env.get("PAIR_RATE_LIMIT", "60")),
            rate_window_seconds=int(env.get("PAIR_RATE_WINDOW_SECONDS", "60")),
            audit_log_path=env.get("AUDIT_LOG_PATH") or None,
        )
