import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

APP_DIR_NAME = "ssh-tunnel-wrapper"


def default_key_storage_dir() -> Path:
    """Application-private directory where imported keys are kept (0700)."""
    data_home = os.environ.get("XDG_DATA_HOME") or os.path.join("~", ".local", "share")
    return Path(data_home).expanduser() / APP_DIR_NAME / "ssh-keys"


class TunnelSettings(BaseModel):
    """Pydantic configuration for tunnel lifecycle timing and locations"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )

    ssh_binary: str | None = Field(
        default=None, description="Path to ssh binary (auto-detected if None)"
    )
    settle_delay: float = Field(
        default=2.0, ge=0.0, le=30.0, description="Wait after spawn before checking liveness"
    )
    terminate_grace: float = Field(
        default=0.5, ge=0.0, le=10.0, description="Wait after SIGTERM before release"
    )
    probe_timeout: float = Field(
        default=1.0, gt=0.0, le=30.0, description="Readiness probe connect timeout"
    )

    keepalive_interval: int = Field(default=60, ge=1, le=3600, description="ServerAliveInterval")
    keepalive_count_max: int = Field(default=3, ge=1, le=100, description="ServerAliveCountMax")

    key_storage_dir: Path = Field(default_factory=default_key_storage_dir)
    temp_dir: Path | None = Field(
        default=None, description="Directory for temporary key copies (system temp if None)"
    )

    @field_validator("key_storage_dir", "temp_dir")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ``~`` so containment checks compare real paths"""
        if v is None:
            return v
        return v.expanduser()

    @property
    def effective_temp_dir(self) -> Path:
        return self.temp_dir or Path(tempfile.gettempdir())
