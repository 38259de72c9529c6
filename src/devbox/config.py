# config.py
# Runtime settings, read from the environment (and a local .env file).
#
#   DEVBOX_STEPS_FILE    step file used when none is given on the command line
#   DEVBOX_HTTP_TIMEOUT  seconds allowed for each HTTP request (default 60)
#   DEVBOX_SUDO          auto | always | never  (auto: sudo unless running as root)
#   GITHUB_TOKEN         optional token for the GitHub releases API

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    steps_file: Path | None = Field(default=None, description="Default step file.")
    http_timeout: float = Field(default=60.0, gt=0, description="Per-request HTTP timeout.")
    sudo: Literal["auto", "always", "never"] = Field(default="auto")
    github_token: str | None = Field(default=None, description="GitHub API token.")

    @property
    def use_sudo(self) -> bool:
        """Whether privileged actions should be prefixed with sudo."""
        if self.sudo == "auto":
            return os.geteuid() != 0
        return self.sudo == "always"


def load_settings() -> Settings:
    """Build Settings from the process environment. Raises pydantic.ValidationError."""
    values: dict[str, str] = {}
    for field, variable in (
        ("steps_file", "DEVBOX_STEPS_FILE"),
        ("http_timeout", "DEVBOX_HTTP_TIMEOUT"),
        ("sudo", "DEVBOX_SUDO"),
        ("github_token", "GITHUB_TOKEN"),
    ):
        value = os.getenv(variable)
        if value:
            values[field] = value
    return Settings.model_validate(values)
