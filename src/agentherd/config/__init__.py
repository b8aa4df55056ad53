"""Configuration: Pydantic models for agentherd settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class SessionConfig(BaseModel):
    """How agent sessions are spawned, buffered and torn down.

    The grace periods are fixed for the lifetime of a manager; there is no
    per-call override.
    """

    command: str = Field(default="claude", description="Agent executable")
    default_args: list[str] = Field(
        default_factory=lambda: [
            "-c",
            "--permission-mode=bypassPermissions",
            "--dangerously-skip-permissions",
        ],
        description="Arguments used when create() is called without any",
    )
    env: dict[str, str] = Field(
        default_factory=lambda: {
            # Keep colors even though stdout is a pipe
            "FORCE_COLOR": "1",
            # The agent's own hooks would report back into us
            "CLAUDE_HOOK_DISABLED": "1",
        },
        description="Environment overlay applied on top of os.environ",
    )
    max_output_lines: int = Field(default=200, ge=1)
    detect_window_lines: int = Field(
        default=50, ge=1, description="Buffered lines scanned by the detectors"
    )
    kill_grace_seconds: float = Field(
        default=1.0, ge=0, description="Wait after closing stdin before SIGTERM"
    )
    force_kill_seconds: float = Field(
        default=2.0, ge=0, description="Wait after SIGTERM before SIGKILL"
    )
    log_file: str | None = Field(
        default=None, description="Append lifecycle log lines to this file"
    )


class AgentherdConfig(BaseModel):
    """Top-level agentherd configuration."""

    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> AgentherdConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            AGENTHERD_COMMAND           - Agent executable to spawn
            AGENTHERD_LOG_FILE          - Lifecycle log file
            AGENTHERD_MAX_OUTPUT_LINES  - Per-session buffer capacity
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        session = config_data.get("session", {})

        env_command = os.environ.get("AGENTHERD_COMMAND")
        if env_command:
            session["command"] = env_command

        env_log_file = os.environ.get("AGENTHERD_LOG_FILE")
        if env_log_file:
            session["log_file"] = env_log_file

        env_max_lines = os.environ.get("AGENTHERD_MAX_OUTPUT_LINES")
        if env_max_lines:
            session["max_output_lines"] = int(env_max_lines)

        if session:
            config_data["session"] = session

        return cls.model_validate(config_data)
