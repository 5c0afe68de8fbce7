from __future__ import annotations

import logging
import os
from collections import deque
from pathlib import Path
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

# Build and dependency output trees; log paths never point into these.
IGNORED_DIR_NAMES = frozenset(
    {
        "build",
        "node_modules",
        "target",
        "dist",
        "out",
        "__pycache__",
        "venv",
        "CMakeFiles",
        "cmake-build-debug",
        "cmake-build-release",
    }
)
DEFAULT_SEARCH_MAX_DIRS = 20_000


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


def _canonical_uri(path: Path) -> str | None:
    try:
        resolved = path.resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        return None
    return resolved.as_uri()


def _skip_dir(name: str) -> bool:
    return name.startswith(".") or name in IGNORED_DIR_NAMES


def find_file_by_name(
    root: Path,
    file_name: str,
    *,
    max_dirs: int = DEFAULT_SEARCH_MAX_DIRS,
) -> Path | None:
    """Breadth-first search under ``root`` for a regular file named ``file_name``.

    Each directory is visited at most once, keyed by device and inode, so
    symlink cycles terminate. The walk gives up after ``max_dirs`` directories.
    """
    try:
        root_stat = root.stat()
    except OSError:
        return None
    visited = {(root_stat.st_dev, root_stat.st_ino)}
    queue: deque[Path] = deque([root])
    scanned = 0
    while queue and scanned < max_dirs:
        directory = queue.popleft()
        scanned += 1
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError:
            continue
        for entry in entries:
            try:
                if entry.is_file():
                    if entry.name == file_name:
                        return Path(entry.path)
                    continue
                if not entry.is_dir() or _skip_dir(entry.name):
                    continue
                entry_stat = entry.stat()
            except OSError:
                continue
            identity = (entry_stat.st_dev, entry_stat.st_ino)
            if identity in visited:
                continue
            visited.add(identity)
            queue.append(Path(entry.path))
    return None


def resolve_uri(
    raw_path: str,
    fallback_uri: str,
    workspace_root: Path | None,
    *,
    max_dirs: int = DEFAULT_SEARCH_MAX_DIRS,
) -> str:
    if not raw_path:
        return fallback_uri
    direct = _canonical_uri(Path(raw_path))
    if direct is not None:
        return direct
    if workspace_root is not None:
        rooted = _canonical_uri(workspace_root / raw_path)
        if rooted is not None:
            return rooted
        name = Path(raw_path).name
        if name:
            found = find_file_by_name(workspace_root, name, max_dirs=max_dirs)
            if found is not None:
                found_uri = _canonical_uri(found)
                if found_uri is not None:
                    return found_uri
    logger.debug("failed to resolve %s; using %r instead", raw_path, fallback_uri)
    return fallback_uri


class UriResolver:
    """Memoizes ``resolve_uri`` for the duration of one log parse."""

    def __init__(
        self,
        fallback_uri: str,
        workspace_root: Path | None,
        *,
        max_dirs: int = DEFAULT_SEARCH_MAX_DIRS,
    ) -> None:
        self.fallback_uri = fallback_uri
        self.workspace_root = workspace_root
        self.max_dirs = max_dirs
        self._cache: dict[str, str] = {}

    def __call__(self, raw_path: str) -> str:
        uri = self._cache.get(raw_path)
        if uri is None:
            uri = resolve_uri(
                raw_path,
                self.fallback_uri,
                self.workspace_root,
                max_dirs=self.max_dirs,
            )
            self._cache[raw_path] = uri
        return uri
