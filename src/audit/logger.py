"""Pairing audit trail: append-only JSON Lines with rotation and hash chain."""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from src.models import AuditEvent


@dataclass
class ChainValidationResult:
    valid: bool
    entries: int = 0
    broken_at_line: int | None = None


def _digest(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Check that every entry's prev_hash matches the line before it.

    The first entry is not checked: after rotation it links to the last line
    of the previous backup file.
    """
    lines = [ln for ln in log_path.read_text().split("\n") if ln.strip()]
    previous: str | None = None
    for lineno, line in enumerate(lines, start=1):
        if previous is not None and json.loads(line).get("prev_hash") != _digest(previous):
            return ChainValidationResult(
                valid=False, entries=len(lines), broken_at_line=lineno,
            )
        previous = line
    return ChainValidationResult(valid=True, entries=len(lines))


class AuditLogger:
    """Records one structured line per pairing decision."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line = self._read_tail()

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        """Create AuditLogger with rotation limits from environment variables."""
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )

    def _read_tail(self) -> str | None:
        if not self.log_path.exists():
            return None
        text = self.log_path.read_text().strip()
        return text.split("\n")[-1] if text else None

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return
        self._backup(self._backup_count).unlink(missing_ok=True)
        for i in range(self._backup_count - 1, 0, -1):
            if self._backup(i).exists():
                self._backup(i).rename(self._backup(i + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        data = json.loads(event.model_dump_json(exclude_none=True))
        data["prev_hash"] = _digest(self._last_line) if self._last_line else None
        line = json.dumps(data, separators=(",", ":"))

        # Rotation and append share one lock so concurrent workers keep the chain.
        lock_file = self.log_path.parent / f".{self.log_path.name}.lock"
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)

        self._last_line = line
