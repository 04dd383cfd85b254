"""Domain models shared by the layout, registry, bridge and host."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_COLS = 80
DEFAULT_ROWS = 24


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SplitDirection(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class Project:
    name: str
    path: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "path": self.path}


@dataclass
class Session:
    id: str
    name: str
    project: Project | None
    status: ConnectionStatus
    created_at: float
    sequence: int

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "project": self.project.to_dict() if self.project else None,
            "status": self.status.value,
            "createdAt": self.created_at,
        }


class SpawnRequest(BaseModel):
    """Payload of a ``spawn`` request; validated again on the host side."""

    model_config = ConfigDict(extra="ignore")

    shell: str
    cwd: str
    cols: int = Field(default=DEFAULT_COLS, gt=0)
    rows: int = Field(default=DEFAULT_ROWS, gt=0)
    args: list[str] = Field(default_factory=list)

    @field_validator("shell", "cwd")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    def to_wire(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "shell": self.shell,
            "cwd": self.cwd,
            "cols": self.cols,
            "rows": self.rows,
        }
        if self.args:
            payload["args"] = list(self.args)
        return payload


class ResizeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


def coerce_direction(value: SplitDirection | str) -> SplitDirection:
    if isinstance(value, SplitDirection):
        return value
    return SplitDirection(str(value).strip().lower())
