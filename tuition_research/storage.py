"""
Versioned, append-only storage for extraction records.

Records are keyed by (project, school, program). Every save adds a new
version; nothing is ever overwritten, so re-running a school keeps the full
history for audit.

Layout of FileRecordStore:
    <root>/<project>/<school-slug>/<program-slug>/v1.json, v2.json, ...
"""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from .config import get_records_dir
from .models.extraction import ExtractionRecord

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = "default"

_VERSION_FILE = re.compile(r"^v(\d+)\.json$")


class RecordStore(Protocol):
    """Anything that can persist an ExtractionRecord as a new version."""

    def save(self, record: ExtractionRecord) -> int: ...


def slugify(text: str) -> str:
    """
    Filesystem-safe slug.

    Examples:
        >>> slugify("Example University")
        'example-university'
        >>> slugify("Part-Time MBA (Evening)")
        'part-time-mba-evening'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "unnamed"


class FileRecordStore:
    """
    JSON-file record store.

    Args:
        root: Base directory (defaults to TUITION_DATA_DIR/records)
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else get_records_dir()
        self._lock = threading.Lock()

    def _record_dir(self, project: Optional[str], school: str, program: str) -> Path:
        return self.root / slugify(project or DEFAULT_PROJECT) / slugify(school) / slugify(program)

    def _existing_versions(self, directory: Path) -> list[int]:
        if not directory.exists():
            return []
        versions = []
        for path in directory.iterdir():
            match = _VERSION_FILE.match(path.name)
            if match:
                versions.append(int(match.group(1)))
        return sorted(versions)

    def save(self, record: ExtractionRecord) -> int:
        """
        Append ``record`` as the next version.

        Returns:
            The version number written (1-based)
        """
        directory = self._record_dir(record.project_id, record.school, record.program)
        with self._lock:
            directory.mkdir(parents=True, exist_ok=True)
            existing = self._existing_versions(directory)
            version = (existing[-1] if existing else 0) + 1
            data = {"version": version, "record": record.to_dict()}
            # "x" mode refuses to replace an existing file
            with open(directory / f"v{version}.json", "x", encoding="utf-8") as f:
                json.dump(data, f, indent=2)

        logger.debug(f"Saved {record.school} / {record.program} as v{version} in {directory}")
        return version

    def versions(self, project: Optional[str], school: str, program: str) -> list[dict[str, Any]]:
        """All stored versions, oldest first, as record dictionaries."""
        directory = self._record_dir(project, school, program)
        results = []
        for version in self._existing_versions(directory):
            path = directory / f"v{version}.json"
            data = json.loads(path.read_text(encoding="utf-8"))
            results.append(data["record"])
        return results

    def latest(self, project: Optional[str], school: str, program: str) -> Optional[ExtractionRecord]:
        """Most recent version, or None when nothing was stored yet."""
        stored = self.versions(project, school, program)
        if not stored:
            return None
        return ExtractionRecord.model_validate(stored[-1])
