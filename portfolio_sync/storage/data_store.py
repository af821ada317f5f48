"""Reader and atomic writer for the website's `projects-data.js` file."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator, Optional

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.models.collection import ProjectCollection
from portfolio_sync.models.project import ProjectRecord

logger = logging.getLogger(__name__)

ASSIGNMENT_MARKER = "const projects = "
GENERATOR_NAME = "portfolio-sync"

FILE_FOOTER = """// Export for use in other modules
if (typeof module !== 'undefined' && module.exports) {
  module.exports = { projects };
}
"""


class DataStoreError(RuntimeError):
    """Raised when the data file cannot be written."""


class DataFileFormatError(DataStoreError):
    """Raised when the existing data file cannot be parsed."""


class SyncInProgressError(DataStoreError):
    """Raised when another sync run holds the data file lock."""


class ProjectDataStore:
    """Structured read, backup and atomic replace of the portfolio data file"""

    def __init__(self, path: Optional[Path] = None, backup_path: Optional[Path] = None):
        if path is None:
            self.path = settings.projects_data_path
            default_backup = settings.projects_backup_path
        else:
            self.path = Path(path)
            default_backup = self.path.with_name(settings.PROJECTS_BACKUP_FILE)
        self.backup_path = Path(backup_path) if backup_path is not None else default_backup
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold an exclusive advisory lock for a read-modify-write sequence

        Fails immediately instead of waiting for the current holder.

        Raises:
            SyncInProgressError: Another run already holds the lock
        """

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a+") as handle:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as exc:
                handle.seek(0)
                holder = handle.read().strip() or "unknown"
                logger.warning(f"Another sync is already running (PID: {holder})")
                raise SyncInProgressError(f"Sync already running (PID: {holder})") from exc

            handle.seek(0)
            handle.truncate()
            handle.write(str(os.getpid()))
            handle.flush()
            logger.debug(f"Data file lock acquired (PID: {os.getpid()})")
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)
                logger.debug("Data file lock released")

    def load(self) -> ProjectCollection:
        """
        Read the persisted collection

        Returns:
            ProjectCollection; empty when the file does not exist yet

        Raises:
            DataFileFormatError: The file exists but holds no decodable project list
        """
        if not self.path.exists():
            logger.info(f"No data file at {self.path}, starting from an empty collection")
            return ProjectCollection()

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DataFileFormatError(f"Unable to read {self.path}: {exc}") from exc

        return ProjectCollection(self.parse(text))

    @staticmethod
    def parse(text: str) -> list[ProjectRecord]:
        start = text.find(ASSIGNMENT_MARKER)
        if start == -1:
            raise DataFileFormatError("Data file has no `const projects = ` assignment")

        try:
            payload, _ = json.JSONDecoder().raw_decode(text, start + len(ASSIGNMENT_MARKER))
        except json.JSONDecodeError as exc:
            raise DataFileFormatError(f"Project list is not valid JSON: {exc}") from exc

        if not isinstance(payload, list):
            raise DataFileFormatError("Project list is not an array")

        records: list[ProjectRecord] = []
        for index, item in enumerate(payload):
            if not isinstance(item, dict):
                raise DataFileFormatError(f"Project entry {index} is not an object")
            try:
                records.append(ProjectRecord.from_dict(item))
            except ValueError as exc:
                raise DataFileFormatError(f"Project entry {index} is invalid: {exc}") from exc
        return records

    @staticmethod
    def render(collection: ProjectCollection, *, generated_at: Optional[datetime] = None) -> str:
        timestamp = (generated_at or datetime.now(UTC)).isoformat()
        projects_json = json.dumps(collection.to_list(), indent=2, ensure_ascii=False)
        return (
            f"// Projects data - Auto-generated by {GENERATOR_NAME}\n"
            f"// Last updated: {timestamp}\n"
            f"// Total projects: {len(collection)}\n"
            "\n"
            f"{ASSIGNMENT_MARKER}{projects_json};\n"
            "\n"
            f"{FILE_FOOTER}"
        )

    def write(self, collection: ProjectCollection) -> Path:
        """
        Sort, back up the current file and atomically replace it

        Raises:
            DataStoreError: Backup or write failed; the previous file is untouched
        """
        collection.sort()
        content = self.render(collection)

        temp_path: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                shutil.copyfile(self.path, self.backup_path)

            fd, temp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=str(self.path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path)
            temp_path = None
        except OSError as exc:
            logger.error(
                "Failed to write data file",
                extra=sanitize_log_extra(path=str(self.path), error=str(exc)),
            )
            raise DataStoreError(f"Unable to write {self.path}: {exc}") from exc
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)

        logger.info(f"Wrote {len(collection)} projects to {self.path}")
        return self.path
