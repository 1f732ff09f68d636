"""
Credential acquisition - ask the operator once for the administrator password.

The password is returned as a ``SecretStr`` so that printing or logging the
value by accident shows ``**********`` instead of the secret.
"""

import asyncio
import logging
from typing import Optional, Protocol

from pydantic import SecretStr
from rich.console import Console
from rich.prompt import Prompt

from .errors import EmptySecret, PromptCancelled

logger = logging.getLogger(__name__)

DIALOG_TITLE = "Administrator Password Required"
DIALOG_MESSAGE = (
    "The bootstrap script needs administrator access to install software. "
    "Please enter your password:"
)


class SecretPrompt(Protocol):
    """A secure input surface.

    ``ask`` returns the entered value, or None when the operator cancelled.
    """

    async def ask(self) -> Optional[str]:
        ...


class DialogPrompt:
    """Modal macOS dialog with a hidden answer, shown through osascript."""

    def __init__(
        self,
        executable: str = "osascript",
        title: str = DIALOG_TITLE,
        message: str = DIALOG_MESSAGE,
    ):
        self.executable = executable
        self.title = title
        self.message = message

    def _script(self) -> list[str]:
        message = self.message.replace('"', '\\"')
        title = self.title.replace('"', '\\"')
        return [
            "-e",
            f'display dialog "{message}" default answer "" with hidden answer with title "{title}"',
            "-e",
            "text returned of result",
        ]

    async def ask(self) -> Optional[str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *self._script(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # No dialog surface at all; there is nothing the operator could confirm
            logger.warning(f"Could not open password dialog: {e}")
            return None

        stdout_bytes, _ = await process.communicate()
        if process.returncode != 0:
            # osascript exits 1 with "User canceled. (-128)" when Cancel is pressed
            logger.info("Password dialog dismissed")
            return None

        value = stdout_bytes.decode()
        if value.endswith("\n"):
            value = value[:-1]
        return value


class TerminalPrompt:
    """Non-echoing prompt on the controlling terminal."""

    def __init__(self, console: Optional[Console] = None, message: str = "Administrator password"):
        self.console = console or Console()
        self.message = message

    def _ask_blocking(self) -> Optional[str]:
        try:
            return Prompt.ask(self.message, console=self.console, password=True)
        except (KeyboardInterrupt, EOFError):
            return None

    async def ask(self) -> Optional[str]:
        return await asyncio.to_thread(self._ask_blocking)


class StaticPrompt:
    """Answer with a fixed value (None simulates a cancelled prompt)."""

    def __init__(self, value: Optional[str]):
        self.value = value
        self.calls = 0

    async def ask(self) -> Optional[str]:
        self.calls += 1
        return self.value


async def acquire_credential(prompt: SecretPrompt) -> SecretStr:
    """Prompt exactly once and validate the answer.

    Args:
        prompt: Secure input surface to ask

    Returns:
        The password, wrapped so it is never displayed

    Raises:
        PromptCancelled: The operator dismissed the prompt
        EmptySecret: The prompt was confirmed with an empty value
    """
    value = await prompt.ask()
    if value is None:
        raise PromptCancelled()
    if value == "":
        raise EmptySecret()

    logger.info("Administrator password received")
    return SecretStr(value)
