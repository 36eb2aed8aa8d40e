"""Contract between the pairing handler and the messaging-protocol backend.

The backend owns the multi-device handshake, its crypto and credential
storage. This module only names what the handler needs from it and provides
the plumbing shared by every backend implementation:

- ``ConnectionUpdate``: normalized ``connection.update`` payload
- ``EventEmitter``: in-process event bus with emission-ordered dispatch
- ``load_backend``: resolve a ``module:attribute`` import path
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from src.models import SocketConfig

logger = logging.getLogger(__name__)

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"

EventHandler = Callable[[Any], Awaitable[None] | None]


class BackendLoadError(RuntimeError):
    """Raised when the configured backend import path cannot be resolved."""


def _field(obj: Any, name: str) -> Any:
    """Key lookup on mappings, attribute lookup on anything else."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


@dataclass(frozen=True)
class ConnectionUpdate:
    """One ``connection.update`` event.

    ``status_code`` is the status carried by the error that closed the
    connection, when there is one.
    """

    connection: str | None = None
    status_code: int | None = None

    @classmethod
    def coerce(cls, payload: ConnectionUpdate | Mapping[str, Any]) -> ConnectionUpdate:
        """Accept either an instance or a raw mapping in the backend's wire shape.

        Raw mappings look like
        ``{"connection": "close", "lastDisconnect": {"error": {"output": {"statusCode": 401}}}}``.
        Backends usually put an exception object under ``error``; its
        ``output`` attribute is read the same way.
        """
        if isinstance(payload, ConnectionUpdate):
            return payload
        error = _field(_field(payload, "lastDisconnect"), "error")
        status = _field(_field(error, "output"), "statusCode")
        return cls(
            connection=payload.get("connection"),
            status_code=int(status) if status is not None else None,
        )


@dataclass
class AuthState:
    """Credential state bound to one session directory."""

    state: Any
    save_creds: EventHandler


class EventSource(Protocol):
    def on(self, event: str, handler: EventHandler) -> None: ...


@runtime_checkable
class MessagingSocket(Protocol):
    ev: EventSource

    @property
    def registered(self) -> bool: ...

    async def request_pairing_code(self, number: str) -> str: ...


@runtime_checkable
class MessagingBackend(Protocol):
    async def use_multi_file_auth_state(self, folder: str) -> AuthState: ...

    async def fetch_latest_version(self) -> Any: ...

    def make_socket(
        self, *, version: Any, auth_state: AuthState, config: SocketConfig,
    ) -> MessagingSocket: ...


class EventEmitter:
    """Dispatches events to subscribers as tasks, in emission order.

    ``emit`` never blocks the emitter: coroutine handlers are scheduled on
    the running loop, plain callables run inline.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Event handler raised: %s", task.exception())

    async def drain(self) -> None:
        """Wait until every scheduled handler task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def load_backend(import_path: str) -> MessagingBackend:
    """Resolve ``module:attribute`` to a backend instance.

    Classes and zero-argument factories are called; anything else is used
    as-is.
    """
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise BackendLoadError(
            f"Backend path must look like 'package.module:attribute', got {import_path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise BackendLoadError(f"Cannot import backend module {module_name!r}: {exc}") from exc

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise BackendLoadError(f"{module_name!r} has no attribute {attr!r}") from exc

    if inspect.isclass(target) or not isinstance(target, MessagingBackend):
        if not callable(target):
            raise BackendLoadError(f"{import_path!r} is not a messaging backend")
        target = target()

    if not isinstance(target, MessagingBackend):
        raise BackendLoadError(f"{import_path!r} does not implement the messaging backend contract")
    logger.info("Loaded messaging backend %s", import_path)
    return target
