"""File-per-key disk store for cached discovery documents.

Each :class:`CacheKey` maps to one JSON file under the store's root
directory, with group-version keys nested as ``<group>/<version>/``.  The
file's modification time is the only age metadata; there are no index or
sidecar files.

Writes are atomic: bytes go to a temporary file in the target directory,
which is then renamed over the destination, so concurrent readers (in this
process or another) see either the previous document or the new one, never
a torn file.  Directories are created ``0o750`` and files ``0o660`` so the
cache can be shared within a group but is never world-readable.

Read I/O never raises: a missing, unreadable, or vanished file is simply a
miss.  Only a key that cannot be mapped to a path (:func:`sanitize_component`)
raises ``ValueError``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DIR_MODE = 0o750
FILE_MODE = 0o660

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")


def sanitize_component(component: str) -> str:
    """Make one path component safe to use as a file or directory name.

    Characters outside ``[A-Za-z0-9_.-]`` become ``_``.

    Raises:
        ValueError: If the component is empty or resolves to ``.``/``..``.
    """
    cleaned = _UNSAFE_CHARS.sub("_", component)
    if cleaned in ("", ".", ".."):
        raise ValueError(f"invalid cache path component: {component!r}")
    return cleaned


@dataclass(frozen=True)
class CacheKey:
    """Identifies one cached discovery document.

    Attributes:
        name: Document name, e.g. ``"servergroups"`` or ``"serverresources"``.
        group_version: Set only for per-group-version documents
            (``"apps/v1"``, or ``"v1"`` for the core group).
    """

    name: str
    group_version: Optional[str] = None

    def relative_path(self) -> Path:
        """Return the file path of this key relative to the store root."""
        filename = sanitize_component(self.name) + ".json"
        if self.group_version is None:
            return Path(filename)
        parts = [sanitize_component(p) for p in self.group_version.split("/")]
        return Path(*parts, filename)

    def __str__(self) -> str:
        if self.group_version is None:
            return self.name
        return f"{self.name}({self.group_version})"


SERVER_GROUPS = CacheKey("servergroups")
SERVER_VERSION = CacheKey("serverversion")
OPENAPI_SCHEMA = CacheKey("openapi")
SERVER_PREFERRED_RESOURCES = CacheKey("serverpreferredresources")
SERVER_PREFERRED_NAMESPACED_RESOURCES = CacheKey("serverpreferrednamespacedresources")


def server_resources_key(group_version: str) -> CacheKey:
    """Key of the resource list for *group_version*."""
    return CacheKey("serverresources", group_version)


@dataclass(frozen=True)
class DiskRecord:
    """Raw bytes of a cache file plus what the store knows about its origin.

    Attributes:
        data: File contents.
        modified: File modification time (seconds since the epoch).
        ours: ``True`` if this store instance wrote the file.
    """

    data: bytes
    modified: float
    ours: bool

    @property
    def age(self) -> float:
        """Seconds elapsed since the file was last written."""
        return time.time() - self.modified


class DiskStore:
    """Maps :class:`CacheKey` instances to files under *root*.

    The store remembers which files it wrote itself so callers can tell a
    document fetched by this process from one inherited from an earlier
    run.  After :meth:`clear` it also stops serving files it did not write,
    which keeps leftovers of a partially failed removal, or files another
    process drops in meanwhile, from reviving stale data.

    Args:
        root: Cache directory for one API server.  Created lazily on the
            first write.

    Example::

        store = DiskStore("/home/me/.cache/discocache/discovery/10.0.0.1_6443")
        store.write(SERVER_GROUPS, b'{"kind": "APIGroupList", "groups": []}')
        record = store.read(SERVER_GROUPS)
        assert record is not None and record.ours
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()
        self._written: set[Path] = set()
        self._cleared = False
        self._epoch = 0

    @property
    def root(self) -> Path:
        """The directory holding this store's files."""
        return self._root

    @property
    def epoch(self) -> int:
        """Counter bumped by every :meth:`clear`; pass it to :meth:`write`."""
        with self._lock:
            return self._epoch

    def path_for(self, key: CacheKey) -> Path:
        """Absolute path of the file backing *key*."""
        return self._root / key.relative_path()

    def read(self, key: CacheKey) -> Optional[DiskRecord]:
        """Return the stored bytes for *key*, or ``None`` on any miss.

        The modification time is taken from the open file descriptor so the
        age always describes the bytes that were actually read, even if a
        concurrent writer replaces the file in between.
        """
        path = self.path_for(key)
        with self._lock:
            ours = path in self._written
            if self._cleared and not ours:
                return None
        try:
            with open(path, "rb") as fh:
                modified = os.fstat(fh.fileno()).st_mtime
                data = fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read discovery cache file %s: %s", path, exc)
            return None
        return DiskRecord(data=data, modified=modified, ours=ours)

    def write(self, key: CacheKey, data: bytes, epoch: Optional[int] = None) -> bool:
        """Atomically replace the file for *key* with *data*.

        Args:
            key: The cache key.
            data: Encoded document.
            epoch: Value of :attr:`epoch` when the document was fetched.  If a
                :meth:`clear` happened since, the document predates it: it is
                not written, or if the clear raced the write, the file is not
                recorded as this store's own and will not be served.

        Returns:
            ``True`` if the file was written and is served by :meth:`read`.

        Raises:
            OSError: If a directory or the file cannot be created.  The
                destination is left untouched and no temp file remains.
        """
        path = self.path_for(key)
        if epoch is not None and epoch != self.epoch:
            logger.debug("Not writing %s: cache was cleared after it was fetched", path)
            return False
        self._make_dirs(path.parent)

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        with self._lock:
            if epoch is not None and epoch != self._epoch:
                return False
            self._written.add(path)
        return True

    def clear(self) -> None:
        """Remove the whole store directory.

        Failures are logged as warnings and otherwise ignored; from here on
        the store only serves files it writes itself.
        """
        with self._lock:
            self._written.clear()
            self._cleared = True
            self._epoch += 1
        try:
            shutil.rmtree(self._root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove discovery cache %s: %s", self._root, exc)

    def _make_dirs(self, directory: Path) -> None:
        """Create *directory* and any missing parents with :data:`DIR_MODE`.

        Each directory is ``chmod``-ed after creation so the process umask
        does not alter the mode.  Existing directories are left as they are.
        """
        missing: list[Path] = []
        current = directory
        while not current.is_dir():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent

        for path in reversed(missing):
            try:
                os.mkdir(path, DIR_MODE)
            except FileExistsError:
                if not stat.S_ISDIR(os.stat(path).st_mode):
                    raise
                continue
            os.chmod(path, DIR_MODE)
