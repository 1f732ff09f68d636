"""A child process attached to a pseudo-terminal, reporting through an event queue.

The provisioning script calls ``sudo`` and interactive installers, which
only prompt when they are talking to a terminal. The child therefore gets a
fresh pseudo-terminal as stdin/stdout/stderr and as its controlling
terminal, in its own session so the whole process group can be signalled.

Events posted to the queue, in the order they happen:
    ChunkReceived(text)   - output became available
    StreamClosed()        - every holder of the terminal closed it
    ChildExited(code)     - the child was reaped
"""

import asyncio
import codecs
import fcntl
import logging
import os
import pty
import signal
import subprocess
import termios
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import SpawnFailed

logger = logging.getLogger(__name__)

READ_SIZE = 4096


@dataclass(frozen=True)
class ChunkReceived:
    text: str


@dataclass(frozen=True)
class StreamClosed:
    pass


@dataclass(frozen=True)
class ChildExited:
    returncode: int


def _acquire_controlling_terminal() -> None:
    # Runs in the child after setsid(); stdin is already the terminal
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class ChildProcess:
    """One spawned command and its pseudo-terminal."""

    def __init__(self, argv: List[str], cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None):
        self.argv = argv
        self.cwd = cwd
        self.env = env
        self._process: Optional[asyncio.subprocess.Process] = None
        self._master: Optional[int] = None
        self._events: Optional[asyncio.Queue] = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._wait_task: Optional[asyncio.Task] = None
        self._reading = False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    async def start(self, events: asyncio.Queue) -> None:
        """Spawn the command and start posting events.

        Raises:
            SpawnFailed: If the terminal or the process cannot be created
        """
        self._events = events
        try:
            master, slave = pty.openpty()
        except OSError as e:
            raise SpawnFailed(f"Could not allocate a terminal: {e}") from e

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=slave,
                stdout=slave,
                stderr=slave,
                cwd=self.cwd,
                env=self.env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_terminal,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master)
            raise SpawnFailed(f"Failed to start {' '.join(self.argv)}: {e}") from e
        finally:
            # The child holds its own copies; ours would keep the stream open forever
            os.close(slave)

        self._master = master
        os.set_blocking(master, False)
        loop = asyncio.get_running_loop()
        loop.add_reader(master, self._on_readable)
        self._reading = True
        self._wait_task = asyncio.create_task(self._wait())
        logger.info(f"Started {self.argv[0]} (pid {self._process.pid})")

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # Linux reports EIO once the last slave descriptor is closed
            data = b""

        if data:
            text = self._decoder.decode(data)
            if text:
                self._events.put_nowait(ChunkReceived(text))
            return

        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._events.put_nowait(ChunkReceived(tail))
        self._stop_reading()
        self._events.put_nowait(StreamClosed())

    async def _wait(self) -> None:
        returncode = await self._process.wait()
        logger.info(f"Process {self._process.pid} exited with code {returncode}")
        self._events.put_nowait(ChildExited(returncode))

    def _stop_reading(self) -> None:
        if self._reading and self._master is not None:
            asyncio.get_running_loop().remove_reader(self._master)
            self._reading = False

    def send(self, text: str) -> None:
        """Type ``text`` into the terminal."""
        if self._master is None:
            return
        data = text.encode()
        os.set_blocking(self._master, True)
        try:
            while data:
                written = os.write(self._master, data)
                data = data[written:]
        finally:
            os.set_blocking(self._master, False)

    def _signal_group(self, signum: int) -> None:
        try:
            os.killpg(self._process.pid, signum)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"Cannot signal process group {self._process.pid}: {e}")

    async def wait_exited(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the child to be reaped."""
        if self._wait_task is None:
            return True
        try:
            await asyncio.wait_for(asyncio.shield(self._wait_task), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def terminate(self, grace_seconds: float) -> None:
        """SIGTERM the process group, then SIGKILL it, and reap the child.

        Returns only once the child has been reaped.
        """
        if self._process is None or self._wait_task is None:
            return

        if self._process.returncode is None:
            logger.info(f"Terminating process group {self._process.pid}")
            self._signal_group(signal.SIGTERM)
            if await self.wait_exited(grace_seconds):
                # Descendants may ignore SIGTERM even though the leader exited
                self._signal_group(signal.SIGKILL)
                return
            logger.warning(f"Process {self._process.pid} ignored SIGTERM, sending SIGKILL")

        self._signal_group(signal.SIGKILL)
        await asyncio.shield(self._wait_task)

    def close(self) -> None:
        """Release the terminal. Safe to call more than once.

        Raises:
            OSError: If the descriptor cannot be closed
        """
        if self._master is None:
            return
        self._stop_reading()
        master, self._master = self._master, None
        os.close(master)
