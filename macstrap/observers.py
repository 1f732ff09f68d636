"""
Output observers - sinks for the ordered text chunks a bootstrap run produces.

The driver writes its own status lines and the provisioning script's output
to an observer as it happens, so a log pane or terminal renders the run
incrementally instead of at completion.
"""

import logging
from typing import List, Optional, Protocol, runtime_checkable

from rich.console import Console


@runtime_checkable
class OutputObserver(Protocol):
    """Anything that accepts ordered text chunks."""

    def write(self, text: str) -> None:
        ...


class ConsoleObserver:
    """Render chunks verbatim on a Rich console.

    Markup and highlighting are disabled: the text is whatever the script
    printed, and square brackets in installer output must not be parsed.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def write(self, text: str) -> None:
        self.console.out(text, end="", highlight=False)
        self.console.file.flush()


class BufferObserver:
    """Keep every chunk in order, e.g. to back a log pane."""

    def __init__(self):
        self.chunks: List[str] = []

    def write(self, text: str) -> None:
        self.chunks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    def clear(self) -> None:
        self.chunks.clear()


class LoggingObserver:
    """Forward complete lines to a logger; partial lines wait for their end."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("macstrap.output")
        self.level = level
        self._partial = ""

    def write(self, text: str) -> None:
        lines = (self._partial + text).split("\n")
        self._partial = lines.pop()
        for line in lines:
            line = line.rstrip("\r")
            if line:
                self.logger.log(self.level, line)

    def flush(self) -> None:
        if self._partial.strip():
            self.logger.log(self.level, self._partial.rstrip("\r"))
        self._partial = ""


class TeeObserver:
    """Fan a chunk out to several observers, in registration order."""

    def __init__(self, *observers: OutputObserver):
        self.observers = list(observers)

    def write(self, text: str) -> None:
        for observer in self.observers:
            observer.write(text)
