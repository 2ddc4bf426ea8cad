"""Migration request/response schemas."""
from typing import Literal, Optional

from pydantic import Field

from s3migrate.config import DryRunMode
from s3migrate.schemas.base import CamelModel, CamelORMModel


class MigrationStartRequest(CamelModel):
    dry_run: Optional[DryRunMode] = None  # None = use DRY_RUN from config
    resume: bool = False


class CleanupRequest(CamelModel):
    max_age_days: Optional[int] = Field(None, ge=0)
    max_count: Optional[int] = Field(None, ge=1)


class CheckResponse(CamelORMModel):
    key: str
    name: str
    status: Literal["ok", "warning", "info", "error"]
    message: str


class CheckReportResponse(CamelORMModel):
    success: bool
    checks: list[CheckResponse]


class ProgressResponse(CamelORMModel):
    total: int = 0
    migrated: int = 0
    failed: int = 0
    bytes: int = 0
    current_file: str = ""
    status: str = "idle"
    phase: str = "idle"
    error: Optional[str] = None


class MigrationStatusResponse(CamelModel):
    running: bool
    progress: ProgressResponse
    result: Optional[dict] = None


class CleanupResponse(CamelORMModel):
    deleted: int
    bytes_freed: int
