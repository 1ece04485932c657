"""Status events surfaced to the caller of the lifecycle coordinator."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class StatusKind(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class StatusEvent:
    """A single normalized status message."""
    kind: StatusKind
    message: str

    @property
    def is_terminal(self) -> bool:
        return self.kind != StatusKind.PENDING
