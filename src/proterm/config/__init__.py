"""Configuration — Pydantic models for proterm settings."""

from __future__ import annotations

import enum
import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ShellType(enum.StrEnum):
    """Shells the local backend knows how to launch."""

    BASH = "bash"
    ZSH = "zsh"
    SH = "sh"

    @property
    def display_name(self) -> str:
        return {"bash": "Bash", "zsh": "Zsh", "sh": "POSIX sh"}[self.value]

    @property
    def executable_path(self) -> str:
        return f"/bin/{self.value}"


class ShellConfig(BaseModel):
    """Which shell runs submitted commands."""

    kind: ShellType = Field(default=ShellType.BASH)
    path: str | None = Field(
        default=None,
        description="Explicit shell executable; overrides the path implied by `kind`.",
    )
    login: bool = Field(
        default=True, description="Run commands through a login shell (`-l`)."
    )

    @property
    def executable(self) -> str:
        return self.path or self.kind.executable_path


class TerminalConfig(BaseModel):
    """Terminal characteristics advertised to child processes."""

    term: str = Field(default="xterm-256color")
    colorterm: str = Field(default="truecolor")
    rows: int = Field(default=24, ge=1)
    cols: int = Field(default=80, ge=1)
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra variables for every child"
    )
    terminate_grace: float = Field(
        default=2.0,
        description="Seconds between SIGHUP and SIGKILL when closing a session",
    )


class ScrollbackConfig(BaseModel):
    """Scrollback buffer limits."""

    max_chars: int = Field(default=50_000, ge=1)


class SessionConfig(BaseModel):
    """Session presentation and persistence settings."""

    prompt_template: str = Field(
        default="{user}@{host} {cwd} % ",
        description="Prompt format; fields: user, host, cwd",
    )
    banner: str = Field(
        default="Welcome to ProTerm!\n____________________\nType commands in the terminal…\n"
    )
    elevation_prefixes: list[str] = Field(default_factory=lambda: ["sudo ", "doas "])
    state_file: str = Field(
        default="~/.proterm/sessions.json",
        description="Where the list of open sessions is persisted",
    )


class ProtermConfig(BaseModel):
    """Top-level proterm configuration."""

    shell: ShellConfig = Field(default_factory=ShellConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    scrollback: ScrollbackConfig = Field(default_factory=ScrollbackConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> ProtermConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            PROTERM_SHELL        - Shell kind (bash/zsh/sh) or an absolute shell path
            PROTERM_LOGIN_SHELL  - "0"/"false" to run commands without `-l`
            PROTERM_TERM         - Value advertised as TERM
            PROTERM_SCROLLBACK   - Scrollback capacity in characters
            PROTERM_STATE_FILE   - Session list location
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        shell = config_data.get("shell", {})
        env_shell = os.environ.get("PROTERM_SHELL")
        if env_shell:
            if os.path.isabs(env_shell):
                shell["path"] = env_shell
            else:
                shell["kind"] = env_shell.lower()
        env_login = os.environ.get("PROTERM_LOGIN_SHELL")
        if env_login:
            shell["login"] = env_login.lower() not in ("0", "false", "no")
        if shell:
            config_data["shell"] = shell

        env_term = os.environ.get("PROTERM_TERM")
        if env_term:
            config_data.setdefault("terminal", {})["term"] = env_term

        env_scrollback = os.environ.get("PROTERM_SCROLLBACK")
        if env_scrollback:
            config_data.setdefault("scrollback", {})["max_chars"] = int(env_scrollback)

        env_state_file = os.environ.get("PROTERM_STATE_FILE")
        if env_state_file:
            config_data.setdefault("session", {})["state_file"] = env_state_file

        return cls.model_validate(config_data)

    @property
    def state_path(self) -> Path:
        return Path(os.path.expanduser(self.session.state_file))
