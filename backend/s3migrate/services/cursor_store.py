"""Resume point persisted between runs."""
import json
import logging
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from s3migrate.services.models import MigrationCursor

logger = logging.getLogger(__name__)

CURSOR_FILENAME = ".migration_cursor.json"


class CursorStore:
    """Stores the last committed file id as JSON, replacing the file atomically."""

    def __init__(self, directory: str | Path):
        self.path = Path(directory) / CURSOR_FILENAME

    def load(self, source_storage_id: int) -> Optional[MigrationCursor]:
        """Saved cursor for this source storage, or None.

        A cursor written for another source storage is ignored.
        """
        if not self.path.is_file():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            cursor = MigrationCursor(
                last_processed_file_id=int(data["last_processed_file_id"]),
                source_storage_id=int(data["source_storage_id"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cursor file {self.path}: {e}")
            return None
        if cursor.source_storage_id != source_storage_id:
            logger.info(
                f"Ignoring cursor for storage {cursor.source_storage_id} (current source is {source_storage_id})"
            )
            return None
        return cursor

    def save(self, cursor: MigrationCursor) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".tmp_{uuid.uuid4().hex}_{self.path.name}")
        temp_path.write_text(json.dumps(asdict(cursor), indent=2), encoding="utf-8")
        temp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
