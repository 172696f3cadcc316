import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class FileChanges:
    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    @property
    def to_index(self) -> List[str]:
        return self.added + self.modified


def manifest_path_for(index_path: str) -> Path:
    """Manifest lives beside the saved vector index"""
    path = Path(index_path)
    return path.with_name(f"{path.stem}.files.json")


def file_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


class FileChangeTracker:
    """Remembers a content hash per knowledge file so only changed files are re-embedded.

    Files are keyed by their source name (path relative to the knowledge base
    directory), the same value chunks carry in ``metadata["source_file"]``.
    """

    def __init__(self, manifest_path: Path):
        self.manifest_path = Path(manifest_path)
        self.files: Dict[str, Dict[str, object]] = self._load()

    def _load(self) -> Dict[str, Dict[str, object]]:
        if not self.manifest_path.exists():
            return {}
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read file manifest", path=str(self.manifest_path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def detect_changes(self, current: Dict[str, Path]) -> FileChanges:
        changes = FileChanges()
        for source, path in sorted(current.items()):
            previous = self.files.get(source)
            if previous is None:
                changes.added.append(source)
            elif previous.get("hash") != file_hash(path):
                changes.modified.append(source)
            else:
                changes.unchanged.append(source)

        changes.removed = sorted(set(self.files) - set(current))
        return changes

    def update(self, current: Dict[str, Path]) -> None:
        for source, path in current.items():
            stat = path.stat()
            self.files[source] = {"hash": file_hash(path), "size": stat.st_size, "last_modified": stat.st_mtime}

    def remove(self, sources: Iterable[str]) -> None:
        for source in sources:
            self.files.pop(source, None)

    def clear(self) -> None:
        self.files = {}

    def save(self) -> None:
        try:
            self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
            self.manifest_path.write_text(json.dumps(self.files, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save file manifest", path=str(self.manifest_path), error=str(e))
