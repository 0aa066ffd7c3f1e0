"""Shared pytest fixtures and configuration for the chclient test suite.

Guidelines
----------
* No network access in any test.
* httpx must be replaced by ``httpx.MockTransport`` at the infra boundary.
* Core tests must be pure — collaborators are ``MagicMock`` fakes.
* Tests must not depend on OS state (config files, environment, TTY).
"""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run in an empty directory with an empty home so no config file is found."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    monkeypatch.setattr(
        "chclient.infra.config_file.SYSTEM_CONFIG_FILE",
        tmp_path / "etc" / "config.toml",
    )
    return tmp_path
