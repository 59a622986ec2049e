#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
links.py
Link store (link.d): take over a user path and replace it with a symlink.

Responsibilities:
- Validate link names and classify paths as file or dir.
- add_link: copy the original into link.d/<name>/content, write the manifest,
  swap the original for a symlink; roll back the entry on failure.
- remove_link: drop the symlink and copy the content back (or purge).
- List/lookup entries, clear package associations.
- Check entries for broken symlinks and recreate a missing symlink.

Layout:
    <root>/link.d/<name>/.manifest.json
    <root>/link.d/<name>/content            (file or directory)
"""

from __future__ import annotations
import enum
import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .config import Env
from .errors import ConflictError, NotFoundError, StoreIOError, ValidationError
from .fsutils import atomic_move, copy_node, remove_path, rmtree, safe_rmtree, stage_copy
from .manifest import read_manifest, write_manifest
from .utils import ensure_dir, log_error, log_info, log_success, log_warn

LINK_CONTENT_NAME = "content"

# letters, digits, underscore, hyphen, dot
_SAFE_LINK_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class LinkType(str, enum.Enum):
    FILE = "file"
    DIR = "dir"


# -----------------------
# Records
# -----------------------
@dataclass
class LinkManifest:
    user_path: str
    type: LinkType
    package_id: str = ""
    package_provider: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"user_path": self.user_path, "type": self.type.value}
        if self.package_id:
            data["package_id"] = self.package_id
        if self.package_provider:
            data["package_provider"] = self.package_provider
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Path) -> "LinkManifest":
        user_path = data.get("user_path")
        if not isinstance(user_path, str) or not os.path.isabs(user_path):
            raise StoreIOError(f"invalid manifest in {source}: user_path must be an absolute path")
        try:
            link_type = LinkType(data.get("type"))
        except ValueError:
            raise StoreIOError(f"invalid manifest in {source}: unknown type {data.get('type')!r}")
        return cls(
            user_path=user_path,
            type=link_type,
            package_id=data.get("package_id") or "",
            package_provider=data.get("package_provider") or "",
        )


@dataclass
class LinkEntry:
    name: str
    manifest: LinkManifest


@dataclass
class LinkProblem:
    name: str
    user_path: str
    problem: str

    def __str__(self) -> str:
        return f"{self.name}: {self.problem} ({self.user_path})"


# -----------------------
# Helpers
# -----------------------
def sanitize_link_name(name: str) -> str:
    """
    Validate a name for use as link.d/<name>. Returns the stripped name.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("link name cannot be empty")
    if "/" in name or os.sep in name or name in (".", "..") or name.startswith(".."):
        raise ValidationError(f"invalid link name: {name}")
    if not _SAFE_LINK_NAME.match(name):
        raise ValidationError(
            f"link name may only contain letters, numbers, underscore, hyphen, and dot: {name}"
        )
    return name


def detect_link_type(user_path: str, env: Env) -> LinkType:
    """
    file or dir for a user path. Existing paths are classified by stat;
    for a missing path a trailing separator means dir, anything else file.
    Must run before the path is touched.
    """
    abs_path = env.resolve_user_path(user_path)
    try:
        st = os.stat(abs_path)
    except (FileNotFoundError, NotADirectoryError):
        if user_path.rstrip(" ").endswith(("/", os.sep)):
            return LinkType.DIR
        return LinkType.FILE
    except OSError as e:
        raise StoreIOError(f"stat {abs_path}: {e}") from e
    return LinkType.DIR if stat.S_ISDIR(st.st_mode) else LinkType.FILE


def get_link_content_path(entry_dir: Union[str, Path]) -> Path:
    return Path(entry_dir) / LINK_CONTENT_NAME


def _is_within(path: Path, parent: Path) -> bool:
    try:
        Path(os.path.abspath(path)).relative_to(os.path.abspath(parent))
    except ValueError:
        return False
    return True


# -----------------------
# Store
# -----------------------
class LinkStore:
    def __init__(self, env: Env):
        self.env = env
        self.link_dir = env.link_dir

    def entry_dir(self, name: str) -> Path:
        return self.link_dir / sanitize_link_name(name)

    def _load_manifest(self, entry_dir: Path) -> LinkManifest:
        try:
            data = read_manifest(entry_dir)
        except FileNotFoundError as e:
            raise StoreIOError(f"missing manifest in {entry_dir}") from e
        except StoreIOError:
            raise
        except OSError as e:
            raise StoreIOError(f"reading manifest in {entry_dir}: {e}") from e
        return LinkManifest.from_dict(data, entry_dir)

    # ---------------- add ----------------
    def add_link(
        self,
        name: str,
        user_path: str,
        link_type: Optional[Union[LinkType, str]] = None,
        package_id: str = "",
        package_provider: str = "",
    ) -> LinkEntry:
        """
        Take over user_path: its content moves to link.d/<name>/content and
        user_path becomes a symlink to it. A missing user_path gets an empty
        file or directory placeholder. link_type defaults to detect_link_type.
        """
        safe_name = sanitize_link_name(name)
        if link_type is None:
            link_type = detect_link_type(user_path, self.env)
        try:
            link_type = LinkType(link_type)
        except ValueError:
            raise ValidationError(f"invalid link type: {link_type} (use file or dir)")
        abs_path = self.env.resolve_user_path(user_path)

        if _is_within(abs_path, self.env.root) or _is_within(self.env.root, abs_path):
            raise ValidationError(f"path overlaps the al home directory: {abs_path}")

        entry_dir = self.link_dir / safe_name
        if os.path.lexists(entry_dir):
            raise ConflictError(f"link name already exists: {safe_name}")

        existed = abs_path.exists()
        if abs_path.is_symlink():
            if not existed:
                raise ValidationError(f"path is a dangling symlink: {abs_path}")
            if _is_within(Path(os.path.realpath(abs_path)), Path(os.path.realpath(self.link_dir))):
                raise ConflictError(f"path is already managed by al: {abs_path}")
        if existed and abs_path.is_dir() != (link_type is LinkType.DIR):
            kind = "a directory" if abs_path.is_dir() else "not a directory"
            raise ValidationError(f"{abs_path} is {kind} but link type is {link_type.value}")

        try:
            ensure_dir(self.link_dir)
            entry_dir.mkdir()
        except FileExistsError:
            raise ConflictError(f"link name already exists: {safe_name}")
        except OSError as e:
            raise StoreIOError(f"creating {entry_dir}: {e}") from e

        content = get_link_content_path(entry_dir)
        manifest = LinkManifest(
            user_path=str(abs_path),
            type=link_type,
            package_id=package_id or "",
            package_provider=package_provider or "",
        )
        original_removed = False
        try:
            if existed:
                copy_node(abs_path, content)
            elif link_type is LinkType.FILE:
                content.write_bytes(b"")
                content.chmod(0o644)
            else:
                content.mkdir(mode=0o755)
            write_manifest(entry_dir, manifest.to_dict())

            if existed:
                remove_path(abs_path)
                original_removed = True
            else:
                abs_path.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(str(content), str(abs_path))
        except OSError as e:
            self._rollback_add(entry_dir, content, abs_path, original_removed)
            raise StoreIOError(f"adding link {safe_name}: {e}") from e

        log_success(f"Linked {abs_path} -> {content}")
        return LinkEntry(name=safe_name, manifest=manifest)

    def _rollback_add(self, entry_dir: Path, content: Path, abs_path: Path, original_removed: bool) -> None:
        if original_removed and not os.path.lexists(abs_path):
            try:
                copy_node(content, abs_path)
            except OSError as e:
                # entry dir holds the only copy now; leave it for `al link repair`
                log_error(f"could not restore {abs_path} ({e}); content kept in {content}")
                return
        if not safe_rmtree(entry_dir):
            log_warn(f"rollback left {entry_dir} behind")

    # ---------------- remove ----------------
    def remove_link(self, entry: LinkEntry, entry_dir: Union[str, Path], purge: bool = False) -> None:
        """
        Remove the symlink at user_path and, unless purge, put the content
        back as a real file or directory. The entry directory is always deleted.
        The restored copy is staged next to user_path and renamed into place
        once the symlink is gone.
        """
        entry_dir = Path(entry_dir)
        content = get_link_content_path(entry_dir)
        user_path = Path(entry.manifest.user_path)

        if os.path.lexists(user_path) and not user_path.is_symlink():
            if not purge:
                raise ConflictError(f"{user_path} exists and is not a symlink; refusing to overwrite it")
            log_warn(f"{user_path} is not a symlink, leaving it in place")

        staged: Optional[Path] = None
        try:
            if not purge and os.path.lexists(content):
                staged = stage_copy(content, user_path)

            if user_path.is_symlink():
                user_path.unlink()

            if not purge:
                if staged is not None:
                    atomic_move(staged, user_path)
                elif entry.manifest.type is LinkType.DIR:
                    user_path.mkdir(parents=True, exist_ok=True)
                else:
                    log_warn(f"content of {entry.name} is missing, nothing restored at {user_path}")

            if entry_dir.exists():
                rmtree(entry_dir)
        except OSError as e:
            raise StoreIOError(f"removing link {entry.name}: {e}") from e
        finally:
            if staged is not None and staged.parent.exists():
                safe_rmtree(staged.parent)

        if purge:
            log_info(f"Purged link {entry.name} ({user_path})")
        else:
            log_success(f"Restored {user_path} and removed link {entry.name}")

    # ---------------- queries ----------------
    def list_links(self, package_id: str = "", package_provider: str = "") -> List[LinkEntry]:
        """
        All link.d entries sorted by name. Filters by package only when both
        package_id and package_provider are non-empty.
        """
        if not self.link_dir.is_dir():
            return []
        result: List[LinkEntry] = []
        for entry_dir in sorted(self.link_dir.iterdir(), key=lambda p: p.name):
            if entry_dir.name.startswith(".") or not entry_dir.is_dir():
                continue
            try:
                manifest = self._load_manifest(entry_dir)
            except StoreIOError as e:
                log_warn(f"skipping link {entry_dir.name}: {e}")
                continue
            if package_id and package_provider:
                if manifest.package_id != package_id or manifest.package_provider != package_provider:
                    continue
            result.append(LinkEntry(name=entry_dir.name, manifest=manifest))
        return result

    def links_by_package(self, package_id: str, package_provider: str) -> List[LinkEntry]:
        return self.list_links(package_id, package_provider)

    def get_link_by_name(self, name: str) -> Tuple[Optional[LinkEntry], Optional[Path]]:
        """
        Exact lookup. Returns (None, None) when no entry has this name.
        """
        safe_name = sanitize_link_name(name)
        entry_dir = self.link_dir / safe_name
        if not entry_dir.is_dir():
            return None, None
        return LinkEntry(name=safe_name, manifest=self._load_manifest(entry_dir)), entry_dir

    def find_link_by_user_path(
        self, user_path: str, package_id: str = "", package_provider: str = ""
    ) -> Tuple[Optional[LinkEntry], Optional[Path]]:
        """
        Lookup by symlink location. user_path is resolved like add_link
        resolves it; the package filter applies when both fields are set.
        """
        wanted = str(self.env.resolve_user_path(user_path))
        for entry in self.list_links(package_id, package_provider):
            if entry.manifest.user_path == wanted:
                return entry, self.link_dir / entry.name
        return None, None

    def clear_link_package_association(self, entry_dir: Union[str, Path]) -> LinkManifest:
        entry_dir = Path(entry_dir)
        manifest = self._load_manifest(entry_dir)
        manifest.package_id = ""
        manifest.package_provider = ""
        write_manifest(entry_dir, manifest.to_dict())
        log_info(f"Cleared package association of link {entry_dir.name}")
        return manifest

    # ---------------- health ----------------
    def check_links(self) -> List[LinkProblem]:
        problems: List[LinkProblem] = []
        for entry in self.list_links():
            content = get_link_content_path(self.link_dir / entry.name)
            user_path = Path(entry.manifest.user_path)

            def report(msg: str) -> None:
                problems.append(LinkProblem(entry.name, str(user_path), msg))

            if not content.exists():
                report("content missing")
            elif content.is_dir() != (entry.manifest.type is LinkType.DIR):
                report(f"content is not a {entry.manifest.type.value}")

            if not os.path.lexists(user_path):
                report("symlink missing")
            elif not user_path.is_symlink():
                report("path is not a symlink")
            elif os.readlink(user_path) != str(content):
                report(f"symlink points to {os.readlink(user_path)}")
        return problems

    def repair_link(self, name: str) -> bool:
        """
        Recreate the symlink of an entry whose user_path is absent (e.g. after
        a crash between removing the original and creating the symlink).
        Returns False when the symlink is already correct.
        """
        entry, entry_dir = self.get_link_by_name(name)
        if entry is None:
            raise NotFoundError(f"no link named {name}")
        content = get_link_content_path(entry_dir)
        user_path = Path(entry.manifest.user_path)
        if os.path.lexists(user_path):
            if user_path.is_symlink() and os.readlink(user_path) == str(content):
                return False
            raise ConflictError(f"{user_path} exists; move it away before repairing")
        if not content.exists():
            raise StoreIOError(f"content of link {entry.name} is missing: {content}")
        try:
            user_path.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(str(content), str(user_path))
        except OSError as e:
            raise StoreIOError(f"repairing link {entry.name}: {e}") from e
        log_success(f"Recreated symlink {user_path} -> {content}")
        return True
