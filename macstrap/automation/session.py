"""The reactive loop that drives one provisioning script to completion.

One AutomationSession owns one child process and one event queue. Events are
consumed in arrival order on the event loop's thread:

    ChunkReceived -> forward (redacted) to the observer, then scan and respond
    StreamClosed  -> the child must exit within the grace period
    ChildExited   -> drain remaining output briefly, then finish

Whatever ends the loop (exit, error, cancellation), the child is reaped
before ``run`` returns or raises, and the terminal is released afterwards.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import SecretStr

from ..errors import CleanupWarning, HungChild
from ..models import PromptAction, PromptRule
from ..observers import OutputObserver
from .child import ChildExited, ChildProcess, ChunkReceived, StreamClosed
from .redact import SecretRedactor
from .rules import DEFAULT_MATCH_WINDOW, PromptMatcher, default_rules

logger = logging.getLogger(__name__)

RETURN = "\r"


class AutomationSession:
    """Run a command on a terminal and answer its prompts.

    Args:
        argv: Command to run
        credential: Administrator password typed at password prompts
        observer: Receives every output chunk, in order
        rules: Ordered prompt rule table (default: ``default_rules()``)
        cwd: Working directory for the command
        env: Environment for the command
        exit_grace_seconds: How long the child may outlive its output, and
            its output may outlive the child
        terminate_grace_seconds: Delay between SIGTERM and SIGKILL
        match_window: Characters of unmatched output kept for matching
    """

    def __init__(
        self,
        argv: List[str],
        credential: SecretStr,
        observer: OutputObserver,
        rules: Optional[Iterable[PromptRule]] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        exit_grace_seconds: float = 10.0,
        terminate_grace_seconds: float = 5.0,
        match_window: int = DEFAULT_MATCH_WINDOW,
    ):
        self.child = ChildProcess(argv, cwd=cwd, env=env)
        self.observer = observer
        self.matcher = PromptMatcher(rules if rules is not None else default_rules(), window=match_window)
        self.exit_grace_seconds = exit_grace_seconds
        self.terminate_grace_seconds = terminate_grace_seconds
        self._credential = credential
        self._redactor = SecretRedactor(credential.get_secret_value())
        self.responses: List[str] = []
        self.cleanup_warnings: List[CleanupWarning] = []

    @property
    def pid(self) -> Optional[int]:
        return self.child.pid

    async def run(self) -> int:
        """Run the command to completion and return its exit code.

        Raises:
            SpawnFailed: The command could not be started
            UnexpectedPrompt: A prompt repeated beyond its allowed answers
            HungChild: Output closed but the child did not exit in time
        """
        events: asyncio.Queue = asyncio.Queue()
        await self.child.start(events)

        try:
            return await self._react(events)
        except BaseException:
            # Error or cancellation: never leave the script running unattended
            await self.child.terminate(self.terminate_grace_seconds)
            raise
        finally:
            self._flush()
            self._release()

    async def _react(self, events: asyncio.Queue) -> int:
        stream_open = True
        exit_code: Optional[int] = None

        while True:
            if not stream_open and exit_code is not None:
                return exit_code

            if stream_open and exit_code is None:
                event = await events.get()
            else:
                try:
                    event = await asyncio.wait_for(events.get(), self.exit_grace_seconds)
                except asyncio.TimeoutError:
                    if exit_code is not None:
                        # A background descendant kept the terminal open; stop it
                        logger.info("Output still open after exit, closing it")
                        await self.child.terminate(self.terminate_grace_seconds)
                        return exit_code
                    pid = self.child.pid
                    logger.error(f"Process {pid} did not exit after its output closed")
                    await self.child.terminate(self.terminate_grace_seconds)
                    raise HungChild(pid, self.exit_grace_seconds)

            if isinstance(event, ChunkReceived):
                self._on_chunk(event.text)
            elif isinstance(event, StreamClosed):
                stream_open = False
                self._flush()
            elif isinstance(event, ChildExited):
                exit_code = event.returncode

    def _on_chunk(self, text: str) -> None:
        visible = self._redactor.feed(text)
        if visible:
            self.observer.write(visible)

        rule = self.matcher.feed(text)
        while rule is not None:
            self._respond(rule)
            # Anything buffered behind the answered prompt gets its own scan
            rule = self.matcher.feed("")

    def _respond(self, rule: PromptRule) -> None:
        if rule.action == PromptAction.SEND_CREDENTIAL:
            response = self._credential.get_secret_value() + RETURN
            self._redactor.arm()
        elif rule.action == PromptAction.SEND_YES:
            response = "y" + RETURN
        else:
            response = RETURN

        logger.info(f"Answering prompt '{rule.name}'")
        self.responses.append(rule.name)
        self.child.send(response)

    def _flush(self) -> None:
        tail = self._redactor.flush()
        if tail:
            self.observer.write(tail)

    def _release(self) -> None:
        try:
            self.child.close()
        except OSError as e:
            logger.warning(f"Could not close terminal for process {self.child.pid}: {e}")
            self.cleanup_warnings.append(CleanupWarning("pseudo-terminal", str(e)))
