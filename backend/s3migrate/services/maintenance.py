"""Maintenance mode switch for the Nextcloud instance being migrated."""
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Protocol

from s3migrate.errors import MigrationError

logger = logging.getLogger(__name__)

_FLAG = re.compile(r"""(['"])maintenance\1\s*=>\s*(true|false)""", re.IGNORECASE)
_ARRAY_OPEN = re.compile(r"(\$CONFIG\s*=\s*array\s*\(\s*|return\s*\[\s*)")


class MaintenanceStore(Protocol):
    def is_enabled(self) -> bool: ...
    def set_maintenance(self, enabled: bool) -> None: ...


class ConfigFileMaintenance:
    """Flips ``'maintenance' => true|false`` in Nextcloud's ``config/config.php``.

    The new content is written to a temporary file next to the config and
    renamed over it, so readers never see a half-written file. A ``.bak`` copy
    of the previous version is kept.
    """

    def __init__(self, nextcloud_dir: str):
        self.config_path = Path(nextcloud_dir) / "config" / "config.php"

    def _read(self) -> str:
        if not self.config_path.is_file():
            raise MigrationError(f"Config file not found: {self.config_path}")
        return self.config_path.read_text(encoding="utf-8")

    def is_enabled(self) -> bool:
        match = _FLAG.search(self._read())
        return bool(match) and match.group(2).lower() == "true"

    def set_maintenance(self, enabled: bool) -> None:
        logger.info(f"{'Enabling' if enabled else 'Disabling'} maintenance mode")
        content = self._read()
        value = "true" if enabled else "false"

        if _FLAG.search(content):
            updated = _FLAG.sub(lambda m: f"{m.group(1)}maintenance{m.group(1)} => {value}", content, count=1)
        elif enabled:
            updated, count = _ARRAY_OPEN.subn(lambda m: f"{m.group(1)}'maintenance' => true,\n  ", content, count=1)
            if not count:
                raise MigrationError(f"Cannot find config array in {self.config_path}")
        else:
            return

        if updated == content:
            return

        shutil.copy2(self.config_path, self.config_path.with_name(self.config_path.name + ".bak"))
        temp_path = self.config_path.with_name(f".tmp_{uuid.uuid4().hex}_{self.config_path.name}")
        temp_path.write_text(updated, encoding="utf-8")
        shutil.copymode(self.config_path, temp_path)
        temp_path.replace(self.config_path)
