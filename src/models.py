"""Shared Pydantic data models for the pairing-code gateway."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class PairingOutcome(str, Enum):
    PAIRED = "paired"
    INVALID_INPUT = "invalid_input"
    AUTH_FAILED = "auth_failed"
    TIMEOUT = "timeout"
    ERROR = "error"


class AuditEventType(str, Enum):
    PAIRING_REQUESTED = "pairing_requested"
    PAIRING_CODE_ISSUED = "pairing_code_issued"
    PAIRING_AUTH_FAILED = "pairing_auth_failed"
    PAIRING_TIMEOUT = "pairing_timeout"
    PAIRING_ERROR = "pairing_error"
    PAIRING_REJECTED = "pairing_rejected"
    RATE_LIMITED = "rate_limited"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Pairing Models ---


class PairingResponse(BaseModel):
    """Terminal HTTP response for one pairing request."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: dict[str, str]
    outcome: PairingOutcome

    @classmethod
    def message(
        cls, status_code: int, text: str, outcome: PairingOutcome,
    ) -> PairingResponse:
        # Error bodies reuse the "code" field for the human-readable message.
        return cls(status_code=status_code, body={"code": text}, outcome=outcome)


class SocketConfig(BaseModel):
    """Fixed options passed to the messaging backend's socket factory."""

    model_config = ConfigDict(frozen=True)

    print_qr_in_terminal: bool = False
    logger_level: str = "fatal"
    browser: tuple[str, str, str] = ("Windows", "Chrome", "10.0.22631")
    mark_online_on_connect: bool = False
    generate_high_quality_link_preview: bool = False
    default_query_timeout_ms: int = Field(default=60_000, gt=0)
    connect_timeout_ms: int = Field(default=60_000, gt=0)
    keep_alive_interval_ms: int = Field(default=30_000, gt=0)
    retry_request_delay_ms: int = Field(default=250, ge=0)
    max_retries: int = Field(default=5, ge=0)


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    number: str | None = None  # masked before it reaches this model
    action: str
    result: str  # "success" | "failure" | "blocked"
    risk_level: RiskLevel
    details: dict[str, Any] | None = None
