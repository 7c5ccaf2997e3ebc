"""Execution side of the channel: handler registry, runner and progress."""

from .context import CommandContext
from .progress import ProgressReporter, ProgressSink
from .registry import CommandRegistry, HandlerDescriptor
from .runner import CommandExecutor, CommandRunner, DuplicateCommand

__all__ = [
    "CommandContext",
    "CommandExecutor",
    "CommandRegistry",
    "CommandRunner",
    "DuplicateCommand",
    "HandlerDescriptor",
    "ProgressReporter",
    "ProgressSink",
]
