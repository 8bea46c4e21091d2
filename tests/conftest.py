"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from proterm.config import ProtermConfig, ShellConfig, TerminalConfig


@pytest.fixture
def config(tmp_path: Path) -> ProtermConfig:
    """Plain /bin/sh without a login profile, state kept under tmp_path."""
    cfg = ProtermConfig(
        shell=ShellConfig(path="/bin/sh", login=False),
        terminal=TerminalConfig(terminate_grace=1.0),
    )
    cfg.session.state_file = str(tmp_path / "state" / "sessions.json")
    return cfg
