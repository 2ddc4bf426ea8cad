"""In-memory data models used during a migration run.

Catalog rows are read into these frozen dataclasses; nothing here is
persisted except MigrationCursor (see cursor_store).
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Literal, Optional

CheckStatus = Literal["ok", "warning", "info", "error"]
RunStatus = Literal["idle", "running", "complete", "failed"]

LOCAL_FILE_NOT_FOUND = "local file not found"
VERIFICATION_FAILED = "file verification failed"


class RunPhase(str, Enum):
    IDLE = "idle"
    PREFLIGHT = "preflight"
    BACKING_UP = "backing_up"
    MAINTENANCE_ON = "maintenance_on"
    MIGRATING = "migrating"
    REMAPPING = "remapping"
    MAINTENANCE_OFF = "maintenance_off"
    COMPLETE = "complete"
    ABORTED = "aborted"


@dataclass(frozen=True)
class FileRecord:
    file_id: int
    path: str
    size: int
    storage_id: int


@dataclass(frozen=True)
class MigrationOutcome:
    """Result of migrating (or transferring) one record."""
    success: bool
    reason: Optional[str] = None
    bytes: int = 0
    missing: bool = False

    @classmethod
    def ok(cls, size: int) -> "MigrationOutcome":
        return cls(success=True, bytes=size)

    @classmethod
    def failed(cls, reason: str, missing: bool = False) -> "MigrationOutcome":
        return cls(success=False, reason=reason, missing=missing)


@dataclass(frozen=True)
class MigrationCursor:
    """Highest file id whose catalog write is committed, per source storage."""
    last_processed_file_id: int
    source_storage_id: int


@dataclass(frozen=True)
class MigrationState:
    """Snapshot handed to progress sinks. Replace, never mutate."""
    total: int = 0
    migrated: int = 0
    failed: int = 0
    bytes: int = 0
    current_file: str = ""
    status: RunStatus = "idle"
    phase: RunPhase = RunPhase.IDLE
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


@dataclass(frozen=True)
class CheckResult:
    key: str
    name: str
    status: CheckStatus
    message: str


@dataclass
class CheckReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not any(c.status == "error" for c in self.checks)

    def add(self, key: str, name: str, status: CheckStatus, message: str) -> None:
        self.checks.append(CheckResult(key=key, name=name, status=status, message=message))

    def get(self, key: str) -> Optional[CheckResult]:
        return next((c for c in self.checks if c.key == key), None)

    def to_dict(self) -> dict:
        return {"success": self.success, "checks": [asdict(c) for c in self.checks]}


@dataclass(frozen=True)
class MigrationResult:
    success: bool
    phase: RunPhase
    files_migrated: int
    files_failed: int
    bytes_transferred: int
    dry_run: bool = False
    backup_file: Optional[str] = None
    cursor: Optional[MigrationCursor] = None
    error: Optional[str] = None
    checks: Optional[CheckReport] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "phase": self.phase.value,
            "files_migrated": self.files_migrated,
            "files_failed": self.files_failed,
            "bytes_transferred": self.bytes_transferred,
            "dry_run": self.dry_run,
            "backup_file": self.backup_file,
            "cursor": asdict(self.cursor) if self.cursor else None,
            "error": self.error,
            "checks": self.checks.to_dict() if self.checks else None,
        }


@dataclass(frozen=True)
class CleanupResult:
    deleted: int = 0
    bytes_freed: int = 0
