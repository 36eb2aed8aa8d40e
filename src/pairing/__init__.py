"""Pairing-code flow for the messaging backend.

This package turns one HTTP request into one device-pairing attempt:
- Phone number validation and code formatting
- Session directory lifecycle
- Backend contract and event plumbing
- Request handler racing connection events against a deadline
"""

from src.pairing.backend import (
    AuthState,
    BackendLoadError,
    ConnectionUpdate,
    EventEmitter,
    MessagingBackend,
    MessagingSocket,
    load_backend,
)
from src.pairing.handler import PairingObserver, PairingRequestHandler, ResponseCell
from src.pairing.phone import PhoneNumberError, format_pairing_code, normalize_number
from src.pairing.sessions import (
    SessionBusyError,
    SessionDirectories,
    SessionLocks,
    UnsafeSessionNameError,
)

__all__ = [
    "AuthState",
    "BackendLoadError",
    "ConnectionUpdate",
    "EventEmitter",
    "MessagingBackend",
    "MessagingSocket",
    "PairingObserver",
    "PairingRequestHandler",
    "PhoneNumberError",
    "ResponseCell",
    "SessionBusyError",
    "SessionDirectories",
    "SessionLocks",
    "UnsafeSessionNameError",
    "format_pairing_code",
    "load_backend",
    "normalize_number",
]
