#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
manifest.py
JSON sidecar files for managed entries (link.d/<name>, shell.d/<pkgkey>).

Both stores keep one `.manifest.json` per entry directory. Writes go through
write_atomic so an interrupted write never leaves a truncated manifest.
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict

from .errors import StoreIOError
from .utils import write_atomic

MANIFEST_FILENAME = ".manifest.json"


def manifest_path(entry_dir: Path) -> Path:
    return Path(entry_dir) / MANIFEST_FILENAME


def read_manifest(entry_dir: Path) -> Dict[str, Any]:
    """
    Load the manifest of an entry. Missing file raises FileNotFoundError so
    callers can choose a default; malformed JSON raises StoreIOError.
    """
    p = manifest_path(entry_dir)
    text = p.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreIOError(f"invalid manifest {p}: {e}")
    if not isinstance(data, dict):
        raise StoreIOError(f"invalid manifest {p}: expected a JSON object")
    return data


def write_manifest(entry_dir: Path, data: Dict[str, Any]) -> None:
    try:
        write_atomic(manifest_path(entry_dir), json.dumps(data, indent=2) + "\n", mode=0o644)
    except OSError as e:
        raise StoreIOError(f"writing manifest in {entry_dir}: {e}") from e
