"""Database backup taken before a migration starts mutating the catalog."""
import asyncio
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from sqlalchemy.engine import make_url

from s3migrate.errors import MigrationError

logger = logging.getLogger(__name__)


class BackupError(MigrationError):
    pass


class DatabaseBackup:
    """Dumps the catalog database into the backup directory.

    PostgreSQL is dumped with ``pg_dump``; a SQLite catalog file is copied.
    """

    def __init__(self, database_url: str, backup_directory: str, pg_dump: str = "pg_dump"):
        self.url = make_url(database_url)
        self.backup_directory = Path(backup_directory)
        self.pg_dump = pg_dump

    def _target(self, suffix: str) -> Path:
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        return self.backup_directory / f"nextcloud_backup_{stamp}{suffix}"

    async def create(self) -> str:
        """Write a backup and return its path."""
        if not self.backup_directory.is_dir():
            raise BackupError(f"Backup directory does not exist: {self.backup_directory}")

        backend = self.url.get_backend_name()
        if backend == "postgresql":
            return await self._dump_postgres()
        if backend == "sqlite" and self.url.database and self.url.database != ":memory:":
            target = self._target(".sqlite")
            await asyncio.to_thread(shutil.copy2, self.url.database, target)
            logger.info(f"Database backup completed successfully: {target}")
            return str(target)
        raise BackupError(f"Backups are not supported for database backend: {backend}")

    async def _dump_postgres(self) -> str:
        target = self._target(".sql")
        logger.info(f"Creating database backup at: {target}")

        args = [self.pg_dump, "-h", self.url.host or "localhost", "-f", str(target)]
        if self.url.port:
            args += ["-p", str(self.url.port)]
        if self.url.username:
            args += ["-U", self.url.username]
        args += ["-d", self.url.database or ""]

        env = dict(os.environ)
        if self.url.password:
            env["PGPASSWORD"] = self.url.password

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackupError(f"Could not run {self.pg_dump}: {e}") from e
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise BackupError(f"Database backup failed with error code {proc.returncode}: {detail}")

        logger.info("Database backup completed successfully")
        return str(target)
