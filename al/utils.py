#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
utils.py
Utility functions for al.

Responsibilities:
- Short logging helpers (INFO, WARN, ERROR, OK) on top of the "al" logger.
- Safe subprocess execution for providers (inherits stdio, optional capture).
- File helpers (atomic write, directory creation).
"""

from __future__ import annotations
import os
import subprocess
import tempfile
from pathlib import Path
from typing import List, Tuple, Optional, Union

from .log import get_logger

_log = get_logger()

# -----------------------
# Logs
# -----------------------
def log_info(msg: str) -> None:
    _log.info(msg)

def log_warn(msg: str) -> None:
    _log.warning(msg)

def log_error(msg: str) -> None:
    _log.error(msg)

def log_success(msg: str) -> None:
    _log.info(f"[ OK ] {msg}")

def log_debug(msg: str) -> None:
    _log.debug(msg)

# -----------------------
# Safe execution
# -----------------------
class CommandError(Exception):
    def __init__(self, cmd: List[str], returncode: int, stdout: str, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command {' '.join(cmd)} failed with code {returncode}")

def safe_run(
    cmd: List[str],
    cwd: Optional[str] = None,
    env: Optional[dict] = None,
    capture: bool = False,
    check: bool = True,
) -> Tuple[int, str, str]:
    """
    Run a command safely.
    Args:
        cmd: argv list
        cwd: working directory
        env: environment variables (merged with os.environ)
        capture: capture stdout/stderr instead of inheriting them
        check: raise CommandError if non-zero
    Returns:
        (returncode, stdout, stderr)
    """
    display_cmd = " ".join(cmd)

    log_debug(f"exec: {display_cmd}")

    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)

    try:
        if capture:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                env=merged_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
            rc, out, err = proc.returncode, proc.stdout, proc.stderr
        else:
            proc = subprocess.run(cmd, cwd=cwd, env=merged_env, check=False)
            rc, out, err = proc.returncode, "", ""
    except FileNotFoundError as e:
        raise CommandError(list(cmd), 127, "", str(e))

    if check and rc != 0:
        raise CommandError(list(cmd), rc, out, err)

    return (rc, out, err)

# -----------------------
# Files
# -----------------------
def ensure_dir(path: Union[str, Path], mode: int = 0o755) -> Path:
    """
    Create a directory (and parents) if it does not exist.
    """
    p = Path(path)
    p.mkdir(parents=True, mode=mode, exist_ok=True)
    return p

def write_atomic(path: Union[str, Path], data: Union[str, bytes], mode: int = 0o644) -> None:
    """
    Write a file atomically (temp file in the same directory, then rename).
    """
    p = Path(path)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(p.parent), prefix=".tmp-")
    try:
        if isinstance(data, bytes):
            with os.fdopen(tmp_fd, "wb") as f:
                f.write(data)
        else:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(data)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, p)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
