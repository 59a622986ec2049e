"""Shared pytest fixtures: an isolated al home, user home and cwd per test."""

import pytest

from al.config import Env


@pytest.fixture
def env(tmp_path) -> Env:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    return Env(root=tmp_path / "al_home", home=home, cwd=work)


@pytest.fixture
def environ(env, monkeypatch):
    """Process environment pointing al at the fixture Env (for CLI tests)."""
    monkeypatch.chdir(env.cwd)
    values = {
        "HOME": str(env.home),
        "AL_HOME": str(env.root),
        "SHELL": "/bin/zsh",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("AL_CONF", raising=False)
    return values
