"""Document-store interface consumed by the sync loop, plus two simple stores.

The relational document store lives outside this package.  The sync loop
only needs the three calls in :class:`DocumentStore`; anything implementing
them (an ORM repository, an HTTP client for the admin backend, …) can be
plugged in.

:class:`InMemoryDocumentStore` backs tests and ad-hoc runs;
:class:`FileDocumentStore` dumps each article as markdown into a directory
with a JSON index so incremental runs work across processes.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from knowledge_rag.ingestion.models import SyncJob

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentStore(Protocol):
    """Persistence calls the sync loop depends on."""

    def find_existing_updated_at(self, source_type: str) -> dict[str, int]:
        """Return ``{item id: updated_at}`` for everything already ingested."""
        ...

    def record_ingested(
        self,
        content: str,
        title: str,
        path: list[str],
        source_type: str,
        source_url: str,
        updated_at: int,
    ) -> bool:
        """Persist one converted, indexed article; ``False`` means "retry"."""
        ...

    def save_sync_job(self, job: SyncJob) -> None:
        """Persist the current state of *job* so collaborators can observe it."""
        ...


@dataclass
class StoredDocument:
    content: str
    title: str
    path: list[str]
    source_type: str
    source_url: str
    updated_at: int


def _item_id(path: list[str], source_url: str) -> str:
    """Items are keyed by the last path segment (the remote article id)."""
    return path[-1] if path else source_url


@dataclass
class InMemoryDocumentStore:
    """Thread-safe dict-backed :class:`DocumentStore`."""

    documents: dict[str, StoredDocument] = field(default_factory=dict)
    jobs: dict[str, SyncJob] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def find_existing_updated_at(self, source_type: str) -> dict[str, int]:
        with self._lock:
            return {
                doc_id: doc.updated_at
                for doc_id, doc in self.documents.items()
                if doc.source_type == source_type
            }

    def record_ingested(
        self,
        content: str,
        title: str,
        path: list[str],
        source_type: str,
        source_url: str,
        updated_at: int,
    ) -> bool:
        doc = StoredDocument(content, title, list(path), source_type, source_url, updated_at)
        with self._lock:
            self.documents[_item_id(path, source_url)] = doc
        return True

    def save_sync_job(self, job: SyncJob) -> None:
        with self._lock:
            self.jobs[job.id] = job.model_copy(deep=True)


# ---------------------------------------------------------------------------
# File-backed store
# ---------------------------------------------------------------------------

_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_RESERVED_NAMES = {"CON", "PRN", "AUX", "NUL"} | {f"{p}{i}" for p in ("COM", "LPT") for i in range(1, 10)}


def sanitize_filename(name: str, replacement: str = "_") -> str:
    """Make *name* safe as a file name on every common filesystem."""
    cleaned = _ILLEGAL_CHARS.sub(replacement, name)
    if cleaned.split(".")[0].upper() in _RESERVED_NAMES:
        cleaned += replacement
    cleaned = re.sub(r"[. ]+$", replacement, cleaned)
    return cleaned if cleaned.strip() else replacement


class FileDocumentStore:
    """Write articles as ``{title}-{updated_at}.md`` under *root*.

    ``index.json`` maps item id → ``{"updated_at", "file", "source_type"}``;
    ``jobs/<id>.json`` holds the latest snapshot of each sync job.
    """

    INDEX_FILE = "index.json"

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._index: dict[str, dict] = self._load_index()

    def find_existing_updated_at(self, source_type: str) -> dict[str, int]:
        with self._lock:
            return {
                item_id: int(entry["updated_at"])
                for item_id, entry in self._index.items()
                if entry.get("source_type") == source_type
            }

    def record_ingested(
        self,
        content: str,
        title: str,
        path: list[str],
        source_type: str,
        source_url: str,
        updated_at: int,
    ) -> bool:
        filename = f"{sanitize_filename(title or _item_id(path, source_url))}-{updated_at}.md"
        try:
            (self.root / filename).write_text(content, encoding="utf-8")
            with self._lock:
                self._index[_item_id(path, source_url)] = {
                    "updated_at": updated_at,
                    "file": filename,
                    "source_type": source_type,
                    "source_url": source_url,
                    "title": title,
                }
                self._write_index()
        except OSError:
            logger.warning("Could not store %s", filename, exc_info=True)
            return False
        return True

    def save_sync_job(self, job: SyncJob) -> None:
        jobs_dir = self.root / "jobs"
        jobs_dir.mkdir(exist_ok=True)
        (jobs_dir / f"{job.id}.json").write_text(job.model_dump_json(indent=2), encoding="utf-8")

    # -- internals ------------------------------------------------------------

    def _load_index(self) -> dict[str, dict]:
        path = self.root / self.INDEX_FILE
        if not path.exists():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_index(self) -> None:
        tmp = self.root / f"{self.INDEX_FILE}.tmp"
        tmp.write_text(json.dumps(self._index, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.root / self.INDEX_FILE)
