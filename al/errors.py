#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
errors.py
Exceptions shared by al's stores and CLI.

Every store operation raises one of these instead of a bare OSError so the
CLI can print a single line and exit non-zero.
"""

from __future__ import annotations


class ALError(Exception):
    pass


class ValidationError(ALError):
    """Bad link name, bad path syntax or unknown shell/provider."""


class ConflictError(ALError):
    """A link name is already in use."""


class NotFoundError(ALError):
    pass


class StoreIOError(ALError, OSError):
    """Copy, symlink or manifest read/write failure."""


class CycleError(ALError):
    def __init__(self, nodes):
        self.nodes = sorted(nodes)
        super().__init__(f"shell.d: cycle in --after dependency: {', '.join(self.nodes)}")


class ConfigError(ALError):
    pass
