"""
macstrap automation - drive an interactive script on a pseudo-terminal.
"""

from .child import ChildExited, ChildProcess, ChunkReceived, StreamClosed
from .redact import MASK, SecretRedactor
from .rules import DEFAULT_RULES, PromptMatcher, default_rules
from .session import AutomationSession

__all__ = [
    "AutomationSession",
    "ChildExited",
    "ChildProcess",
    "ChunkReceived",
    "DEFAULT_RULES",
    "MASK",
    "PromptMatcher",
    "SecretRedactor",
    "StreamClosed",
    "default_rules",
]
