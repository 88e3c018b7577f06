"""Project files: path canonicalization, loading and atomic persistence."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional

from . import config
from .errors import WriteFailure
from .models import SourceFile

logger = logging.getLogger(__name__)


def canonical_path(project_root: Path, path: str | Path) -> str:
    """Return the one normalized key used for *path* everywhere downstream.

    The key is the POSIX-style path relative to *project_root*. Absolute
    paths must lie under the root.
    """
    root = Path(project_root).resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    try:
        return resolved.relative_to(root).as_posix()
    except ValueError as exc:
        raise ValueError(f"{path} is outside project root {root}") from exc


def iter_markup_files(project_root: Path) -> Iterable[Path]:
    for file_path in sorted(Path(project_root).rglob("*")):
        if not file_path.is_file() or file_path.suffix not in config.MARKUP_EXTENSIONS:
            continue
        if any(part in config.SKIP_DIRS for part in file_path.relative_to(project_root).parts):
            continue
        yield file_path


def load_source_files(
    project_root: Path,
    paths: Optional[Iterable[str | Path]] = None,
) -> Dict[str, SourceFile]:
    """Read project files once, keyed by canonical path.

    Args:
        project_root: Root directory of the project
        paths: Explicit files to load; defaults to every markup file under the root

    Returns:
        Mapping of canonical path to SourceFile, in load order
    """
    root = Path(project_root).resolve()
    selected = list(paths) if paths is not None else list(iter_markup_files(root))

    files: Dict[str, SourceFile] = {}
    for raw in selected:
        key = canonical_path(root, raw)
        if key in files:
            continue
        try:
            with open(root / key, "r", encoding="utf-8", newline="") as handle:
                content = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", key, exc)
            continue
        files[key] = SourceFile(path=key, content=content)

    logger.info("Loaded %d source files from %s", len(files), root)
    return files


def write_atomic(target: Path, content: str) -> None:
    """Replace *target* with *content* in one step.

    Raises:
        WriteFailure: if the file could not be written
    """
    target = Path(target)
    if not target.exists():
        raise WriteFailure(f"{target} does not exist; only existing files are updated")

    try:
        fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    except OSError as exc:
        raise WriteFailure(f"Failed to stage {target}: {exc}", details={"path": str(target)}) from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        shutil.copymode(target, tmp_path)
        os.replace(tmp_path, target)
    except OSError as exc:
        raise WriteFailure(f"Failed to write {target}: {exc}", details={"path": str(target)}) from exc
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
