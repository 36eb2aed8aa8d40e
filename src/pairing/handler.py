"""Pairing request lifecycle.

One call to ``PairingRequestHandler.handle`` validates the caller's number,
opens a messaging backend session in its own credential directory, and
races the backend's connection events against a deadline. Every path that
can answer the caller goes through ``ResponseCell.settle``, so exactly one
response comes out regardless of how the events interleave.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from src.models import (
    AuditEvent,
    AuditEventType,
    PairingOutcome,
    PairingResponse,
    RiskLevel,
    SocketConfig,
)
from src.pairing.backend import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    ConnectionUpdate,
    MessagingBackend,
    MessagingSocket,
)
from src.pairing.phone import (
    PhoneNumberError,
    format_pairing_code,
    mask_number,
    normalize_number,
)
from src.pairing.sessions import (
    SessionBusyError,
    SessionDirectories,
    SessionLocks,
    UnsafeSessionNameError,
)

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

MISSING_NUMBER = "Phone number required. Add ?number=15551234567 to URL"
INVALID_NUMBER = (
    "Invalid phone number. Use full international number without + "
    "(e.g., 15551234567, 447911123456)"
)
AUTH_FAILED = "Authentication failed. Try again."
TIMED_OUT = "Timeout. WhatsApp server took too long to respond."

# Disconnect statuses meaning the server rejected this device.
AUTH_FAILURE_STATUSES = frozenset({401, 403})

_AUDIT_TYPES = {
    PairingOutcome.PAIRED: (AuditEventType.PAIRING_CODE_ISSUED, "success", RiskLevel.INFO),
    PairingOutcome.INVALID_INPUT: (AuditEventType.PAIRING_REJECTED, "failure", RiskLevel.LOW),
    PairingOutcome.AUTH_FAILED: (AuditEventType.PAIRING_AUTH_FAILED, "failure", RiskLevel.MEDIUM),
    PairingOutcome.TIMEOUT: (AuditEventType.PAIRING_TIMEOUT, "failure", RiskLevel.LOW),
    PairingOutcome.ERROR: (AuditEventType.PAIRING_ERROR, "failure", RiskLevel.MEDIUM),
}


class ResponseCell:
    """Single-assignment slot for a request's terminal response."""

    def __init__(self) -> None:
        self._future: asyncio.Future[PairingResponse] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def settled(self) -> bool:
        return self._future.done()

    @property
    def response(self) -> PairingResponse | None:
        return self._future.result() if self._future.done() else None

    def settle(self, response: PairingResponse) -> bool:
        """Store ``response`` unless one is already stored. Returns True if stored."""
        if self._future.done():
            logger.debug("Dropping %s response, request already answered", response.status_code)
            return False
        self._future.set_result(response)
        return True

    async def wait(self) -> PairingResponse:
        # Shielded so a caller-side timeout leaves the slot open for the 408.
        return await asyncio.shield(self._future)


class PairingObserver:
    """Turns ``connection.update`` events into terminal responses.

    ``open`` on an unregistered account requests a pairing code (200 or 500),
    ``close`` with an auth-failure status answers 401, and any other close
    is logged and left to the deadline.
    """

    def __init__(
        self,
        socket: MessagingSocket,
        number: str,
        cell: ResponseCell,
        grace_seconds: float = 3.0,
    ) -> None:
        self._socket = socket
        self._number = number
        self._cell = cell
        self._grace_seconds = grace_seconds
        self._transitions = {
            "open": self._on_open,
            "close": self._on_close,
        }

    async def on_connection_update(self, payload: Any) -> None:
        update = ConnectionUpdate.coerce(payload)
        transition = self._transitions.get(update.connection or "")
        if transition is None:
            return
        if self._cell.settled:
            logger.debug("Ignoring %s event, request already answered", update.connection)
            return
        await transition(update)

    async def _on_open(self, update: ConnectionUpdate) -> None:
        logger.info("Connected for %s", mask_number(self._number))
        if self._socket.registered:
            logger.info("Credentials already registered, no pairing code needed")
            return

        await asyncio.sleep(self._grace_seconds)
        if self._cell.settled:
            return

        try:
            raw_code = await self._socket.request_pairing_code(self._number)
        except Exception as exc:
            logger.error("Pairing code request failed: %s", exc)
            self._cell.settle(PairingResponse.message(500, f"Error: {exc}", PairingOutcome.ERROR))
            return

        if not raw_code or not isinstance(raw_code, str):
            logger.warning("Backend returned no usable pairing code: %r", raw_code)
            return

        code = format_pairing_code(raw_code)
        self._cell.settle(PairingResponse(
            status_code=200,
            body={"num": self._number, "code": code},
            outcome=PairingOutcome.PAIRED,
        ))

    async def _on_close(self, update: ConnectionUpdate) -> None:
        logger.info("Connection closed, status: %s", update.status_code)
        if update.status_code in AUTH_FAILURE_STATUSES:
            self._cell.settle(PairingResponse.message(401, AUTH_FAILED, PairingOutcome.AUTH_FAILED))


class PairingRequestHandler:
    """Runs one pairing request from raw query value to terminal response."""

    def __init__(
        self,
        backend: MessagingBackend,
        sessions: SessionDirectories,
        *,
        timeout_seconds: float = 30.0,
        grace_seconds: float = 3.0,
        socket_config: SocketConfig | None = None,
        locks: SessionLocks | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._backend = backend
        self._sessions = sessions
        self._timeout_seconds = timeout_seconds
        self._grace_seconds = grace_seconds
        self._socket_config = socket_config or SocketConfig()
        self._locks = locks or SessionLocks()
        self._audit = audit_logger

    async def handle(
        self, raw_number: str | None, source_ip: str | None = None,
    ) -> PairingResponse:
        if not raw_number:
            return self._finish(
                PairingResponse.message(400, MISSING_NUMBER, PairingOutcome.INVALID_INPUT),
                None, source_ip,
            )

        try:
            session_dir = self._sessions.path_for(raw_number)
        except UnsafeSessionNameError:
            logger.warning("Rejected number unusable as a session name")
            return self._finish(
                PairingResponse.message(400, INVALID_NUMBER, PairingOutcome.INVALID_INPUT),
                None, source_ip,
            )

        # The deadline also covers waiting behind a request for the same number.
        deadline = asyncio.get_running_loop().time() + self._timeout_seconds
        try:
            async with self._locks.hold(session_dir, deadline):
                return await self._pair(raw_number, session_dir, source_ip, deadline)
        except SessionBusyError:
            logger.warning("Deadline passed while another request held the session")
            return self._finish(
                PairingResponse.message(408, TIMED_OUT, PairingOutcome.TIMEOUT),
                None, source_ip,
            )

    async def _pair(
        self, raw_number: str, session_dir: Path, source_ip: str | None, deadline: float,
    ) -> PairingResponse:
        await self._sessions.remove(session_dir)

        try:
            number = normalize_number(raw_number)
        except PhoneNumberError as exc:
            logger.info("Invalid phone number: %s", exc)
            return self._finish(
                PairingResponse.message(400, INVALID_NUMBER, PairingOutcome.INVALID_INPUT),
                None, source_ip,
            )

        logger.info("Processing number %s", mask_number(number))
        self._audit_log(
            AuditEventType.PAIRING_REQUESTED, "pending", RiskLevel.INFO, number, source_ip,
        )

        cell = ResponseCell()
        try:
            async with asyncio.timeout_at(deadline):
                try:
                    await self._start_session(session_dir, number, cell)
                except Exception as exc:
                    logger.exception("Session initialization failed")
                    cell.settle(PairingResponse.message(
                        500, f"Server error: {exc}", PairingOutcome.ERROR,
                    ))
                response = await cell.wait()
        except TimeoutError:
            cell.settle(PairingResponse.message(408, TIMED_OUT, PairingOutcome.TIMEOUT))
            # Holds the 408, or whatever landed just before the deadline.
            response = await cell.wait()

        if response.outcome is not PairingOutcome.PAIRED:
            await self._sessions.remove(session_dir)
        return self._finish(response, number, source_ip)

    async def _start_session(
        self, session_dir: Path, number: str, cell: ResponseCell,
    ) -> MessagingSocket:
        auth_state = await self._backend.use_multi_file_auth_state(str(session_dir))
        version = await self._backend.fetch_latest_version()
        socket = self._backend.make_socket(
            version=version, auth_state=auth_state, config=self._socket_config,
        )
        observer = PairingObserver(socket, number, cell, grace_seconds=self._grace_seconds)
        socket.ev.on(CONNECTION_UPDATE, observer.on_connection_update)
        socket.ev.on(CREDS_UPDATE, auth_state.save_creds)
        return socket

    def _finish(
        self, response: PairingResponse, number: str | None, source_ip: str | None,
    ) -> PairingResponse:
        event_type, result, risk = _AUDIT_TYPES[response.outcome]
        self._audit_log(
            event_type, result, risk, number, source_ip,
            {"status_code": response.status_code},
        )
        return response

    def _audit_log(
        self,
        event_type: AuditEventType,
        result: str,
        risk_level: RiskLevel,
        number: str | None,
        source_ip: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if not self._audit:
            return
        self._audit.log(AuditEvent(
            event_type=event_type,
            source_ip=source_ip,
            number=mask_number(number) if number else None,
            action="pair",
            result=result,
            risk_level=risk_level,
            details=details,
        ))
