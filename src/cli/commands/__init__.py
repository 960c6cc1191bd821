"""CLI command modules."""

from .daemon import daemon
from .init import init
from .memory import memory
from .patterns import patterns
from .sync import sync

__all__ = [
    "daemon",
    "init",
    "memory",
    "patterns",
    "sync",
]
