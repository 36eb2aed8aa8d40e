"""Shared test fixtures for the pairing-code gateway."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.models import AuditEvent, AuditEventType, RiskLevel, SocketConfig
from src.pairing.backend import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    AuthState,
    EventEmitter,
)

# A dialable US number in the formats callers actually send.
RAW_NUMBER = "1 (650) 253-0000"
E164_DIGITS = "16502530000"

OPEN = (CONNECTION_UPDATE, {"connection": "open"})


def close_with(status: int | None) -> tuple[str, dict[str, Any]]:
    update: dict[str, Any] = {"connection": "close"}
    if status is not None:
        update["lastDisconnect"] = {"error": {"output": {"statusCode": status}}}
    return CONNECTION_UPDATE, update


class FakeSocket:
    """Scripted socket: replays events on the loop once it has been built."""

    def __init__(
        self,
        code: Any = "ABCD1234",
        code_error: Exception | None = None,
        registered: bool = False,
    ) -> None:
        self.ev = EventEmitter()
        self._code = code
        self._code_error = code_error
        self._registered = registered
        self.pairing_requests: list[str] = []

    @property
    def registered(self) -> bool:
        return self._registered

    async def request_pairing_code(self, number: str) -> str:
        self.pairing_requests.append(number)
        if self._code_error is not None:
            raise self._code_error
        return self._code


class FakeBackend:
    """In-memory messaging backend that records how it was driven."""

    def __init__(
        self,
        events: list[tuple[str, Any]] | None = None,
        *,
        code: Any = "ABCD1234",
        code_error: Exception | None = None,
        registered: bool = False,
        init_error: Exception | None = None,
    ) -> None:
        self.events = events or []
        self.code = code
        self.code_error = code_error
        self.registered = registered
        self.init_error = init_error
        self.auth_folders: list[str] = []
        self.saved_creds: list[Any] = []
        self.sockets: list[FakeSocket] = []
        self.configs: list[SocketConfig] = []

    async def use_multi_file_auth_state(self, folder: str) -> AuthState:
        self.auth_folders.append(folder)
        Path(folder).mkdir(parents=True, exist_ok=True)
        (Path(folder) / "creds.json").write_text("{}")

        async def save_creds(update: Any) -> None:
            self.saved_creds.append(update)

        return AuthState(state={"creds": {}}, save_creds=save_creds)

    async def fetch_latest_version(self) -> tuple[int, int, int]:
        if self.init_error is not None:
            raise self.init_error
        return (2, 3000, 1015901307)

    def make_socket(
        self, *, version: Any, auth_state: AuthState, config: SocketConfig,
    ) -> FakeSocket:
        socket = FakeSocket(
            code=self.code, code_error=self.code_error, registered=self.registered,
        )
        self.sockets.append(socket)
        self.configs.append(config)
        loop = asyncio.get_running_loop()
        for event, payload in self.events:
            loop.call_soon(socket.ev.emit, event, payload)
        return socket


def creds_update(payload: Any = None) -> tuple[str, Any]:
    return CREDS_UPDATE, payload or {"me": {"id": E164_DIGITS}}


@pytest.fixture
def session_root(tmp_path: Path) -> Path:
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.PAIRING_REQUESTED,
        "action": "pair",
        "result": "pending",
        "risk_level": RiskLevel.INFO,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)
