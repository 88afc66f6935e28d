"""
Local Storage Backend

Stores each record as a JSON file below a root directory. Conditional writes
hold an exclusive flock on a per-path lock file, so they are atomic across
threads and processes sharing the same filesystem.
"""
import fcntl
import hashlib
import json
import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import structlog

from topiccluster.storage.backend import Record, StorageBackend, StorageError


logger = structlog.get_logger(__name__)

LOCK_DIR = '.locks'
TMP_SUFFIX = '.tmp'


class LocalStorage(StorageBackend):
    """JSON-file record store."""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / LOCK_DIR).mkdir(exist_ok=True)
        logger.debug("local_storage_initialized", root=str(self.root))

    def _file_path(self, path: str) -> Path:
        parts = [part for part in path.split('/') if part]
        if not parts or any(part in ('.', '..') for part in parts) or parts[0] == LOCK_DIR:
            raise StorageError(f"Invalid record path: {path!r}")
        return self.root.joinpath(*parts)

    @contextmanager
    def _exclusive(self, path: str) -> Iterator[None]:
        digest = hashlib.sha1(path.encode('utf-8')).hexdigest()
        lock_file = self.root / LOCK_DIR / f"{digest}.lock"
        with open(lock_file, 'a') as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load(self, file_path: Path) -> Optional[Record]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt record at {file_path}: {e}") from e

    def _store(self, file_path: Path, record: Record) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_name(f"{file_path.name}.{uuid.uuid4().hex}{TMP_SUFFIX}")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(record, f, indent=2)
        os.replace(tmp_path, file_path)

    def write(self, path: str, record: Record) -> None:
        self._store(self._file_path(path), record)

    def read(self, path: str) -> Optional[Record]:
        return self._load(self._file_path(path))

    def list(self, prefix: str) -> List[str]:
        directory = prefix.rsplit('/', 1)[0] if '/' in prefix else ''
        start = self.root.joinpath(*[p for p in directory.split('/') if p])
        if not start.is_dir():
            return []

        results = []
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames[:] = [d for d in dirnames if d != LOCK_DIR]
            for filename in filenames:
                if filename.endswith(TMP_SUFFIX):
                    continue
                relative = Path(dirpath, filename).relative_to(self.root).as_posix()
                if relative.startswith(prefix):
                    results.append(relative)
        return sorted(results)

    def delete(self, path: str) -> None:
        try:
            os.unlink(self._file_path(path))
        except FileNotFoundError:
            pass

    def create(self, path: str, record: Record) -> bool:
        file_path = self._file_path(path)
        with self._exclusive(path):
            if file_path.exists():
                return False
            self._store(file_path, record)
            return True

    def compare_and_swap(self, path: str, expected: Record, record: Record) -> bool:
        file_path = self._file_path(path)
        with self._exclusive(path):
            if self._load(file_path) != expected:
                return False
            self._store(file_path, record)
            return True

    def compare_and_delete(self, path: str, expected: Record) -> bool:
        file_path = self._file_path(path)
        with self._exclusive(path):
            if self._load(file_path) != expected:
                return False
            os.unlink(file_path)
            return True
