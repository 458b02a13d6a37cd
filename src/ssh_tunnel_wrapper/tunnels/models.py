"""Tunnel models using Pydantic for type safety and validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ..common.utils import format_destination, validate_non_empty_string

if TYPE_CHECKING:
    from ..core.keys import KeyMaterialHandle
    from ..core.process import ProcessHandle


class TunnelState(str, Enum):
    """Lifecycle states of a tunnel controller."""

    IDLE = "idle"
    ALLOCATING = "allocating"
    RESOLVING_KEY = "resolving_key"
    LAUNCHING = "launching"
    PROBING = "probing"
    ESTABLISHED = "established"
    CLOSING = "closing"
    CLOSED = "closed"


class KeyReference(BaseModel):
    """Where the private key comes from.

    A bookmark token, when present, wins over the plain path. The path is
    still kept because it is what the user sees and what saved profiles
    fall back to when no bookmark could be created.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    path: str = Field(default="~/.ssh/id_rsa", description="Private key path (~ allowed)")
    bookmark: bytes | None = Field(
        default=None, repr=False, description="Scoped bookmark token"
    )

    @property
    def is_bookmark(self) -> bool:
        return bool(self.bookmark)


class TunnelConfiguration(BaseModel):
    """Caller-supplied SSH tunnel parameters (immutable)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    host: str = Field(description="SSH host")
    port: int = Field(default=22, ge=1, le=65535, description="SSH port")
    user: str = Field(description="SSH user")
    key: KeyReference = Field(default_factory=KeyReference)
    remote_host: str = Field(description="Target host as seen from SSH host")
    remote_port: int = Field(ge=1, le=65535, description="Target port")
    enabled: bool = Field(default=True, description="Saved profiles can disable tunnelling")

    @field_validator("host", "user", "remote_host")
    @classmethod
    def validate_not_blank(cls, v: str, info: ValidationInfo) -> str:
        return validate_non_empty_string(v, info.field_name or "Field")

    @property
    def destination(self) -> str:
        return format_destination(self.user, self.host)

    @property
    def forward_spec(self) -> str:
        """Remote half of the ``-L`` entry."""
        return f"{self.remote_host}:{self.remote_port}"

    def with_remote(self, remote_host: str, remote_port: int) -> TunnelConfiguration:
        """Return a validated copy targeting another remote endpoint."""
        return self.model_validate(
            {**self.model_dump(), "remote_host": remote_host, "remote_port": remote_port}
        )


class TunnelHandle:
    """Mutable state owned by one controller.

    ``local_port`` is nonzero exactly when a process reference is held; both
    are set together by :meth:`activate` and dropped together by :meth:`clear`.
    """

    def __init__(self) -> None:
        self.local_port: int = 0
        self.process: ProcessHandle | None = None
        self.key_material: KeyMaterialHandle | None = None

    def activate(self, local_port: int, process: ProcessHandle) -> None:
        self.local_port = local_port
        self.process = process

    def clear(self) -> None:
        self.local_port = 0
        self.process = None
        self.key_material = None

    @property
    def is_empty(self) -> bool:
        return (
            self.local_port == 0 and self.process is None and self.key_material is None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "local_port": self.local_port,
            "pid": self.process.pid if self.process is not None else None,
            "key_path": str(self.key_material.path) if self.key_material else None,
        }
