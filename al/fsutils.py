# al/fsutils.py
"""Filesystem helpers: mode-preserving copies, staged copies, atomic move, rmtree
"""

from __future__ import annotations
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path


def copy_file(src: Path, dest: Path) -> None:
    """Copy file bytes and permission bits (follows a symlinked src)."""
    shutil.copyfile(str(src), str(dest))
    shutil.copymode(str(src), str(dest))


def copy_tree(src: Path, dest: Path) -> None:
    """Recursive copy keeping structure, modes and inner symlinks as symlinks."""
    shutil.copytree(str(src), str(dest), symlinks=True, copy_function=shutil.copy)


def copy_node(src: Path, dest: Path) -> None:
    if src.is_dir():
        copy_tree(src, dest)
    else:
        copy_file(src, dest)


def stage_copy(src: Path, dest: Path) -> Path:
    """
    Copy src to a hidden temporary sibling of dest and return it.
    The caller swaps it into place with atomic_move.
    """
    parent = dest.parent
    parent.mkdir(parents=True, exist_ok=True)
    staged = Path(tempfile.mkdtemp(prefix=f".{dest.name}.al-restore-", dir=str(parent)))
    target = staged / "node"
    try:
        copy_node(src, target)
    except BaseException:
        rmtree(staged)
        raise
    return target


def atomic_move(src: Path, dest: Path) -> None:
    """Rename src onto dest (same filesystem); dest must not be a non-empty dir."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    os.replace(str(src), str(dest))


def _make_writable_and_retry(func, path, _exc):
    parent = os.path.dirname(path)
    if parent:
        os.chmod(parent, os.stat(parent).st_mode | stat.S_IWUSR | stat.S_IXUSR)
    if os.path.isdir(path) and not os.path.islink(path):
        os.chmod(path, os.stat(path).st_mode | stat.S_IWUSR | stat.S_IXUSR)
    func(path)


def rmtree(p: Path) -> None:
    """Delete a directory tree, tolerating read-only subdirectories."""
    if sys.version_info >= (3, 12):
        shutil.rmtree(str(p), onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(str(p), onerror=_make_writable_and_retry)


def remove_path(p: Path) -> None:
    """Remove a file, symlink or directory tree; missing paths are ignored."""
    if p.is_symlink() or (p.exists() and not p.is_dir()):
        p.unlink()
    elif p.is_dir():
        rmtree(p)


def safe_rmtree(p: Path) -> bool:
    """Best-effort removal for rollback paths; returns False when something is left."""
    try:
        remove_path(p)
    except OSError:
        return False
    return not (p.exists() or p.is_symlink())
