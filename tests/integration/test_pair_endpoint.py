"""Integration tests for the pairing HTTP endpoint."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app, create_app_from_env
from src.config import PairingSettings
from src.pairing.backend import BackendLoadError
from tests.conftest import E164_DIGITS, OPEN, RAW_NUMBER, FakeBackend, close_with


def _make_app(backend: FakeBackend, root: Path, **kwargs: Any) -> Any:
    defaults: dict[str, Any] = {
        "session_root": str(root),
        "timeout_seconds": 0.3,
        "grace_seconds": 0,
    }
    defaults.update(kwargs)
    return create_app(backend, PairingSettings(**defaults))


async def _get(app: Any, path: str, **params: str) -> Any:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path, params=params)


class TestPairEndpoint:
    @pytest.mark.asyncio
    async def test_success_returns_num_and_code(self, session_root: Path) -> None:
        app = _make_app(FakeBackend([OPEN], code="WXYZ9876"), session_root)
        resp = await _get(app, "/", number=RAW_NUMBER)

        assert resp.status_code == 200
        assert resp.json() == {"num": E164_DIGITS, "code": "WXYZ-9876"}
        assert (session_root / RAW_NUMBER).is_dir()

    @pytest.mark.asyncio
    async def test_missing_number_is_400(self, session_root: Path) -> None:
        resp = await _get(_make_app(FakeBackend(), session_root), "/")
        assert resp.status_code == 400
        assert "Phone number required" in resp.json()["code"]
        assert list(session_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_invalid_number_is_400(self, session_root: Path) -> None:
        resp = await _get(_make_app(FakeBackend(), session_root), "/", number="abc")
        assert resp.status_code == 400
        assert resp.json()["code"].startswith("Invalid phone number")

    @pytest.mark.asyncio
    async def test_auth_failure_is_401(self, session_root: Path) -> None:
        app = _make_app(FakeBackend([close_with(401)]), session_root)
        resp = await _get(app, "/", number=E164_DIGITS)
        assert resp.status_code == 401
        assert resp.json() == {"code": "Authentication failed. Try again."}

    @pytest.mark.asyncio
    async def test_timeout_is_408(self, session_root: Path) -> None:
        app = _make_app(FakeBackend([]), session_root, timeout_seconds=0.05)
        resp = await _get(app, "/", number=E164_DIGITS)
        assert resp.status_code == 408
        assert resp.json() == {"code": "Timeout. WhatsApp server took too long to respond."}
        assert not (session_root / E164_DIGITS).exists()

    @pytest.mark.asyncio
    async def test_init_failure_is_500(self, session_root: Path) -> None:
        app = _make_app(FakeBackend(init_error=OSError("network down")), session_root)
        resp = await _get(app, "/", number=E164_DIGITS)
        assert resp.status_code == 500
        assert resp.json() == {"code": "Server error: network down"}

    @pytest.mark.asyncio
    async def test_rate_limit_is_429(self, session_root: Path) -> None:
        app = _make_app(FakeBackend(), session_root, rate_limit=2)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [(await client.get("/")).status_code for _ in range(3)]
        assert statuses == [400, 400, 429]

    @pytest.mark.asyncio
    async def test_rate_limit_is_audited(self, session_root: Path, tmp_path: Path) -> None:
        from src.audit.logger import AuditLogger

        log_path = tmp_path / "audit.jsonl"
        app = create_app(
            FakeBackend(),
            PairingSettings(session_root=str(session_root), rate_limit=1),
            AuditLogger(str(log_path)),
        )
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/")
            await client.get("/")

        event_types = [json.loads(line)["event_type"] for line in log_path.read_text().splitlines()]
        assert event_types == ["pairing_rejected", "rate_limited"]

    @pytest.mark.asyncio
    async def test_health(self, session_root: Path) -> None:
        resp = await _get(_make_app(FakeBackend(), session_root), "/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAppFactory:
    def test_from_env_requires_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PAIRING_BACKEND", raising=False)
        with pytest.raises(BackendLoadError, match="PAIRING_BACKEND"):
            create_app_from_env()

    def test_from_env_loads_backend(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path,
    ) -> None:
        monkeypatch.setenv("PAIRING_BACKEND", "tests.conftest:FakeBackend")
        monkeypatch.setenv("SESSION_ROOT", str(tmp_path))
        monkeypatch.setenv("AUDIT_LOG_PATH", str(tmp_path / "audit.jsonl"))
        app = create_app_from_env()

        assert isinstance(app.state.pairing_handler._backend, FakeBackend)
        assert app.state.pairing_handler._audit is not None

    def test_docs_disabled(self, session_root: Path) -> None:
        app = _make_app(FakeBackend(), session_root)
        paths = [r.path for r in app.routes]
        assert "/docs" not in paths
        assert "/" in paths
