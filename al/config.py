#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
config.py
Config loader and environment for al.

Responsibilities:
- Build the explicit Env value (root, home, cwd) that every store receives.
  Root comes from AL_HOME or defaults to ~/.al.
- Load the YAML config file (path from AL_CONF, --config or <root>/config.yaml).
- Merge with default values and validate basic types.
- Resolve user-facing paths (~, ~/..., relative to cwd) to absolute ones.

Usage:
    env = Env.from_environ()
    cfg = Config.load(env)                # <root>/config.yaml or defaults
    cfg.get('logging', 'level')           # returns value
"""

from __future__ import annotations
import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError, ValidationError
from .utils import ensure_dir, write_atomic

ROOT_ENV_VAR = "AL_HOME"
CONF_ENV_VAR = "AL_CONF"
LINK_DIR_NAME = "link.d"
SHELL_DIR_NAME = "shell.d"

# -----------------------
# Defaults
# -----------------------
DEFAULT_CONFIG: Dict[str, Any] = {
    'default_provider': 'brew',
    'logging': {
        'level': 'INFO',
        'colors': True,
        'logfile': None,
    },
}

# -----------------------
# Utilities
# -----------------------
def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively update base with override and return new dict.
    Dict values are merged, non-dict override replaces.
    """
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_update(result[k], v)
        else:
            result[k] = v
    return result

# -----------------------
# Environment
# -----------------------
@dataclass(frozen=True)
class Env:
    """
    Where al keeps its state and how relative user paths are resolved.
    """
    root: Path
    home: Path
    cwd: Path

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> 'Env':
        environ = os.environ if environ is None else environ
        home = Path(environ.get('HOME') or Path.home())
        root = environ.get(ROOT_ENV_VAR)
        return cls(
            root=Path(root) if root else home / '.al',
            home=home,
            cwd=Path(os.getcwd()),
        )

    @property
    def link_dir(self) -> Path:
        return self.root / LINK_DIR_NAME

    @property
    def shell_dir(self) -> Path:
        return self.root / SHELL_DIR_NAME

    def ensure_root(self) -> Path:
        return ensure_dir(self.root)

    def resolve_user_path(self, path: str) -> Path:
        """
        Absolute form of a user-facing path: absolute paths are normalised,
        '~' and '~/...' are taken relative to home, anything else to cwd.
        Symlinks are not followed.
        """
        if not path or not path.strip():
            raise ValidationError("path cannot be empty")
        if os.path.isabs(path):
            return Path(os.path.normpath(path))
        if path == '~' or path.startswith('~/'):
            return Path(os.path.normpath(os.path.join(str(self.home), path[2:])))
        return Path(os.path.normpath(os.path.join(str(self.cwd), path)))

# -----------------------
# Config dataclass
# -----------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))
    source_path: Optional[Path] = None

    @classmethod
    def load(cls, env: Env, path: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """
        Load configuration.
        Resolution order:
          1. explicit `path` argument,
          2. environment variable AL_CONF,
          3. <root>/config.yaml (if exists),
          4. fallback to DEFAULT_CONFIG
        """
        environ = os.environ if environ is None else environ
        if path:
            cfg_path = Path(path)
        elif environ.get(CONF_ENV_VAR):
            cfg_path = Path(environ[CONF_ENV_VAR])
        else:
            cfg_path = env.root / 'config.yaml'

        base = copy.deepcopy(DEFAULT_CONFIG)
        if not cfg_path.exists():
            if path:
                raise ConfigError(f"config file not found: {cfg_path}")
            return cls(raw=base, source_path=None)

        try:
            raw_user = yaml.safe_load(cfg_path.read_text(encoding='utf-8')) or {}
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"failed to parse config file {cfg_path}: {e}")
        if not isinstance(raw_user, dict):
            raise ConfigError(f"config file {cfg_path} must contain a mapping")

        cfg = cls(raw=_deep_update(base, raw_user), source_path=cfg_path)
        cfg._validate()
        return cfg

    def _validate(self) -> None:
        provider = self.raw.get('default_provider')
        if not isinstance(provider, str) or not provider:
            raise ConfigError("default_provider must be a non-empty string")
        logs = self.raw.get('logging')
        if not isinstance(logs, dict):
            raise ConfigError("logging must be a mapping")
        logs['colors'] = bool(logs.get('colors', True))
        if logs.get('logfile'):
            logs['logfile'] = os.path.expanduser(os.path.expandvars(str(logs['logfile'])))

    # Convenience getters
    def get(self, *keys, default: Any = None) -> Any:
        """
        cfg.get('logging', 'level') or cfg.get('default_provider')
        """
        node = self.raw
        for k in keys:
            if isinstance(node, dict) and k in node:
                node = node[k]
            else:
                return default
        return node

    @property
    def default_provider(self) -> str:
        return self.get('default_provider')

    @property
    def logging(self) -> Dict[str, Any]:
        return self.get('logging', default={})

    def save(self, target: Path) -> None:
        ensure_dir(target.parent)
        data = yaml.safe_dump(self.raw, default_flow_style=False, sort_keys=False)
        write_atomic(target, data, mode=0o644)
        self.source_path = target

    def pretty(self) -> str:
        return json.dumps(self.raw, indent=2, ensure_ascii=False)
