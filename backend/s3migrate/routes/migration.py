"""Migration API - preflight checks, start/stop/status of the run, preview cleanup."""
from fastapi import APIRouter, Depends, HTTPException

from s3migrate.errors import ConfigurationError
from s3migrate.schemas.migration import (
    CheckReportResponse,
    CleanupRequest,
    CleanupResponse,
    MigrationStartRequest,
    MigrationStatusResponse,
)
from s3migrate.services.migration_runner import (
    MigrationService,
    RunAlreadyActiveError,
    get_migration_service,
)

router = APIRouter(prefix="/api/migration", tags=["migration"])


@router.get("/config")
async def get_config(service: MigrationService = Depends(get_migration_service)):
    """Effective configuration, without credentials."""
    return service.settings.public_dict()


@router.post("/checks", response_model=CheckReportResponse)
async def run_checks(service: MigrationService = Depends(get_migration_service)):
    """Run the read-only pre-migration checks."""
    report = await service.run_checks()
    return report.to_dict()


@router.post("/start", response_model=MigrationStatusResponse, status_code=202)
async def start_migration(
    body: MigrationStartRequest,
    service: MigrationService = Depends(get_migration_service),
):
    """Start a migration in the background. Poll /status for progress."""
    try:
        service.start(dry_run=body.dry_run, resume=body.resume)
    except ConfigurationError as e:
        raise HTTPException(422, str(e))
    except RunAlreadyActiveError as e:
        raise HTTPException(409, str(e))
    return service.status()


@router.get("/status", response_model=MigrationStatusResponse)
async def get_status(service: MigrationService = Depends(get_migration_service)):
    """Latest progress snapshot of the current or last run."""
    return service.status()


@router.post("/stop")
async def stop_migration(service: MigrationService = Depends(get_migration_service)):
    """Ask the running migration to stop after the current record."""
    if not service.stop():
        raise HTTPException(409, "No migration is running")
    return {"stopping": True}


@router.post("/cleanup-previews", response_model=CleanupResponse)
async def cleanup_previews(
    body: CleanupRequest,
    service: MigrationService = Depends(get_migration_service),
):
    """Delete old preview images (bounded by age and count).

    With DRY_RUN enabled the cleanup only reports what it would free: no
    object, local file or catalog row is deleted.
    """
    try:
        result = await service.cleanup_previews(body.max_age_days, body.max_count)
    except RunAlreadyActiveError as e:
        raise HTTPException(409, str(e))
    return {"deleted": result.deleted, "bytes_freed": result.bytes_freed}
