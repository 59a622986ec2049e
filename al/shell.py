#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
shell.py
Shell activation graph (shell.d).

Features:
- One directory per package (id, provider), shared across profiles
- Snippet files per shell extension (.zsh / .bash), loaded in file-name order
- Manifest with an optional "after" dependency and an enabled flag
- Topological ordering (Kahn) with ties broken by directory name
- Cycle detection among enabled, snippet-bearing packages
- Rendering of the `source` lines printed by `al activate`

Layout:
    <root>/shell.d/<pkgkey>/.manifest.json
    <root>/shell.d/<pkgkey>/snippet.<ext>
"""

from __future__ import annotations
import heapq
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import Env
from .errors import CycleError, StoreIOError, ValidationError
from .fsutils import rmtree
from .manifest import MANIFEST_FILENAME, read_manifest, write_manifest
from .utils import ensure_dir, log_debug, log_info, log_warn

SHELL_EXTENSIONS = {
    "zsh": ".zsh",
    "bash": ".bash",
}
DEFAULT_SNIPPET_BASENAME = "snippet"

_UNSAFE_CHARS = str.maketrans({"/": "_", ":": "_", " ": "_"})


# -----------------------
# Records
# -----------------------
@dataclass
class ShellManifest:
    after: str = ""
    enabled: bool = True

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {}
        if self.after:
            data["after"] = self.after
        data["enabled"] = self.enabled
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, object], source: Path) -> "ShellManifest":
        after = data.get("after") or ""
        enabled = data.get("enabled", True)
        if not isinstance(after, str) or not isinstance(enabled, bool):
            raise StoreIOError(f"invalid shell manifest in {source}")
        return cls(after=after, enabled=enabled)


@dataclass
class ShellEntry:
    dir_name: str
    paths: List[Path] = field(default_factory=list)


# -----------------------
# Helpers
# -----------------------
def package_dir_name(package_id: str, provider: str) -> str:
    """
    Directory name under shell.d for a package. The profile is not part of
    the key, so every profile shares the same shell.d entry.
    """
    return f"{package_id.translate(_UNSAFE_CHARS)}_{provider.translate(_UNSAFE_CHARS)}"


def shell_ext(shell: str) -> str:
    try:
        return SHELL_EXTENSIONS[shell]
    except KeyError:
        raise ValidationError(f"unsupported shell: {shell} (use zsh or bash)")


def shell_ext_from_env(environ: Optional[Mapping[str, str]] = None) -> str:
    """Snippet extension for the user's $SHELL; zsh when unknown."""
    environ = os.environ if environ is None else environ
    sh = environ.get("SHELL", "")
    if "zsh" in sh:
        return ".zsh"
    if "bash" in sh:
        return ".bash"
    return ".zsh"


def load_shell_manifest(pkg_dir: Union[str, Path]) -> ShellManifest:
    """
    Manifest of a package directory, or the default (enabled, no after)
    when no manifest has been written yet.
    """
    pkg_dir = Path(pkg_dir)
    try:
        data = read_manifest(pkg_dir)
    except FileNotFoundError:
        return ShellManifest()
    except StoreIOError:
        raise
    except OSError as e:
        raise StoreIOError(f"reading shell manifest in {pkg_dir}: {e}") from e
    return ShellManifest.from_dict(data, pkg_dir)


def save_shell_manifest(pkg_dir: Union[str, Path], manifest: ShellManifest) -> None:
    pkg_dir = Path(pkg_dir)
    try:
        ensure_dir(pkg_dir)
    except OSError as e:
        raise StoreIOError(f"creating {pkg_dir}: {e}") from e
    write_manifest(pkg_dir, manifest.to_dict())


def snippet_files_in_dir(pkg_dir: Union[str, Path], ext: str) -> List[Path]:
    """
    Files in pkg_dir ending with ext (manifest excluded), sorted by name.
    This is the load order within one package.
    """
    if not ext:
        raise ValidationError("snippet extension cannot be empty")
    pkg_dir = Path(pkg_dir)
    try:
        children = list(pkg_dir.iterdir())
    except OSError as e:
        raise StoreIOError(f"listing {pkg_dir}: {e}") from e
    names = sorted(
        p.name for p in children
        if not p.is_dir() and p.name.endswith(ext) and p.name != MANIFEST_FILENAME
    )
    return [pkg_dir / n for n in names]


def topological_order(after_of: Mapping[str, str]) -> List[str]:
    """
    Order the keys of after_of so that every key comes after its "after"
    target. Targets outside the mapping are ignored. Ready nodes are taken
    smallest-name first. Raises CycleError when some nodes can never be emitted.
    """
    dependents: Dict[str, List[str]] = {k: [] for k in after_of}
    indeg: Dict[str, int] = {k: 0 for k in after_of}
    for key, after in after_of.items():
        if after and after in after_of:
            dependents[after].append(key)
            indeg[key] += 1

    ready = [k for k, deg in indeg.items() if deg == 0]
    heapq.heapify(ready)
    order: List[str] = []

    while ready:
        cur = heapq.heappop(ready)
        order.append(cur)
        for dep in dependents[cur]:
            indeg[dep] -= 1
            if indeg[dep] == 0:
                heapq.heappush(ready, dep)

    if len(order) < len(after_of):
        emitted = set(order)
        raise CycleError([k for k in after_of if k not in emitted])
    return order


def render_activation(entries: Iterable[ShellEntry]) -> str:
    """Shell code sourcing every snippet, one `source` line per file."""
    lines = [f"source {shlex.quote(str(p))}" for e in entries for p in e.paths]
    return "".join(line + "\n" for line in lines)


# -----------------------
# Store
# -----------------------
class ShellStore:
    def __init__(self, env: Env):
        self.env = env
        self.shell_dir = env.shell_dir

    def package_dir(self, package_id: str, provider: str) -> Path:
        return self.shell_dir / package_dir_name(package_id, provider)

    def ensure_package_dir(self, package_id: str, provider: str) -> Path:
        pkg_dir = self.package_dir(package_id, provider)
        try:
            ensure_dir(pkg_dir)
        except OSError as e:
            raise StoreIOError(f"creating {pkg_dir}: {e}") from e
        return pkg_dir

    def remove_package_dir(self, package_id: str, provider: str) -> bool:
        """Delete the package's shell.d directory. No-op (False) if absent."""
        pkg_dir = self.package_dir(package_id, provider)
        if not pkg_dir.exists():
            return False
        try:
            rmtree(pkg_dir)
        except OSError as e:
            raise StoreIOError(f"removing {pkg_dir}: {e}") from e
        log_info(f"Removed shell.d entry {pkg_dir.name}")
        return True

    def list_package_dir_names(self) -> List[str]:
        if not self.shell_dir.is_dir():
            return []
        try:
            children = list(self.shell_dir.iterdir())
        except OSError as e:
            raise StoreIOError(f"listing {self.shell_dir}: {e}") from e
        return sorted(p.name for p in children if p.is_dir() and not p.name.startswith("."))

    def enabled_entries_in_order(self, ext: str) -> List[ShellEntry]:
        """
        Enabled packages that have at least one snippet for ext, in an order
        where each "after" target precedes its dependent. "after" targets that
        are disabled or have no snippet are ignored. Ties go by directory name.
        """
        after_of: Dict[str, str] = {}
        paths: Dict[str, List[Path]] = {}
        for dir_name in self.list_package_dir_names():
            pkg_dir = self.shell_dir / dir_name
            manifest = load_shell_manifest(pkg_dir)
            if not manifest.enabled:
                log_debug(f"shell.d: {dir_name} disabled")
                continue
            files = snippet_files_in_dir(pkg_dir, ext)
            if not files:
                continue
            after_of[dir_name] = manifest.after
            paths[dir_name] = files

        order = topological_order(after_of)
        return [ShellEntry(dir_name=d, paths=paths[d]) for d in order]

    # ---------------- mutations used by the CLI ----------------
    def snippet_path(self, package_id: str, provider: str, ext: str) -> Path:
        return self.package_dir(package_id, provider) / f"{DEFAULT_SNIPPET_BASENAME}{ext}"

    def set_snippet(
        self,
        package_id: str,
        provider: str,
        content: str,
        ext: str,
        after: Optional[str] = None,
    ) -> Path:
        """
        Write snippet<ext> for the package (newline-terminated) and, when
        after is given, record it as the package's "after" dependency.
        """
        pkg_dir = self.ensure_package_dir(package_id, provider)
        snippet = self.snippet_path(package_id, provider, ext)
        if content and not content.endswith("\n"):
            content += "\n"
        try:
            snippet.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StoreIOError(f"writing {snippet}: {e}") from e

        manifest = load_shell_manifest(pkg_dir)
        if after is not None:
            manifest.after = after
        save_shell_manifest(pkg_dir, manifest)
        log_info(f"Set shell snippet {snippet}")
        return snippet

    def ensure_snippet_file(self, package_id: str, provider: str, ext: str) -> Path:
        """Create an empty snippet<ext> if missing (for editing)."""
        self.ensure_package_dir(package_id, provider)
        snippet = self.snippet_path(package_id, provider, ext)
        if not snippet.exists():
            try:
                snippet.write_text("", encoding="utf-8")
            except OSError as e:
                raise StoreIOError(f"creating {snippet}: {e}") from e
        return snippet

    def set_after(self, package_id: str, provider: str, after: str) -> ShellManifest:
        pkg_dir = self.ensure_package_dir(package_id, provider)
        manifest = load_shell_manifest(pkg_dir)
        manifest.after = after
        save_shell_manifest(pkg_dir, manifest)
        return manifest

    def set_enabled(self, package_id: str, provider: str, enabled: bool) -> ShellManifest:
        pkg_dir = self.package_dir(package_id, provider)
        if not pkg_dir.exists():
            log_warn(f"shell.d: no entry for {pkg_dir.name} yet, creating it")
        manifest = load_shell_manifest(pkg_dir)
        manifest.enabled = enabled
        save_shell_manifest(pkg_dir, manifest)
        log_info(f"{'Enabled' if enabled else 'Disabled'} shell snippet for {pkg_dir.name}")
        return manifest

    def describe(self, package_id: str, provider: str, ext: str) -> Optional[Tuple[Path, ShellManifest, List[Path]]]:
        """(dir, manifest, snippet files) for a package, or None if it has no entry."""
        pkg_dir = self.package_dir(package_id, provider)
        if not pkg_dir.is_dir():
            return None
        return pkg_dir, load_shell_manifest(pkg_dir), snippet_files_in_dir(pkg_dir, ext)
