"""Execution context handed to command handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .progress import ProgressReporter


@dataclass
class CommandContext:
    command_id: str
    command: str
    params: Dict[str, Any]
    progress: Optional[ProgressReporter] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)
