"""
Workspace - ephemeral directory holding a fresh clone of the provisioning repo.

A workspace belongs to exactly one bootstrap run. It is created with a
collision-free name, filled by a fetcher, and removed when the run ends,
whatever the outcome.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .errors import CleanupWarning, EntryPointMissing, FetchFailed

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


class Fetcher(Protocol):
    """Materializes a source location into an existing, empty directory."""

    async def fetch(self, source: str, dest: Path) -> None:
        ...


class GitFetcher:
    """Clone a repository with the git command line."""

    def __init__(self, executable: str = "git", branch: Optional[str] = None):
        self.executable = executable
        self.branch = branch

    async def _run_command(self, cmd: List[str], cwd: str | None = None) -> Dict[str, Any]:
        """Run a git command and return the result.

        Args:
            cmd: Command parts to execute
            cwd: Working directory for command execution

        Returns:
            Dict with 'returncode', 'stdout', 'stderr'

        Raises:
            FetchFailed: If git cannot be started
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=cwd,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except OSError as e:
            raise FetchFailed(f"Failed to run command {' '.join(cmd)}: {e}") from e

        stdout_bytes, stderr_bytes = await process.communicate()
        return {
            "returncode": process.returncode,
            "stdout": stdout_bytes.decode(errors="replace").strip(),
            "stderr": stderr_bytes.decode(errors="replace").strip(),
        }

    async def fetch(self, source: str, dest: Path) -> None:
        cmd = [self.executable, "clone"]
        if self.branch:
            cmd += ["--branch", self.branch]
        cmd += [source, str(dest)]

        result = await self._run_command(cmd)
        if result["returncode"] != 0:
            reason = result["stderr"] or f"git exited with code {result['returncode']}"
            raise FetchFailed(f"Failed to clone repository {source}: {reason}")

        if not dest.is_dir() or not any(dest.iterdir()):
            raise FetchFailed(f"Clone of {source} produced an empty checkout")


class Workspace:
    """An ephemeral directory owned by one run."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def create(cls, root: Optional[Path] = None, prefix: str = "bootstrap-") -> "Workspace":
        """Create a uniquely named directory under ``root``.

        The name carries a millisecond timestamp plus mkdtemp's random
        suffix, so concurrent runs never share a directory.
        """
        parent = Path(root) if root else Path(tempfile.gettempdir())
        parent.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=f"{prefix}{int(time.time() * 1000)}-", dir=parent))
        logger.info(f"Created workspace {path}")
        return cls(path)

    async def fetch(self, source: str, fetcher: Fetcher) -> None:
        """Fill the workspace from ``source``. Attempted once, no retries."""
        logger.info(f"Fetching {source} into {self.path}")
        try:
            await fetcher.fetch(source, self.path)
        except FetchFailed:
            raise
        except OSError as e:
            raise FetchFailed(f"Failed to fetch {source}: {e}") from e

    def prepare_entry_point(self, name: str) -> Path:
        """Check the provisioning script exists and make it executable.

        Raises:
            EntryPointMissing: If the script is not in the workspace
        """
        entry = self.path / name
        if not entry.is_file():
            raise EntryPointMissing(name)

        entry.chmod(EXECUTABLE_MODE)
        logger.debug(f"Marked {entry} executable")
        return entry

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def remove(self) -> Optional[CleanupWarning]:
        """Delete the workspace recursively.

        Returns:
            A CleanupWarning if something was left behind, None otherwise
        """
        if not self.path.exists():
            return None

        try:
            shutil.rmtree(self.path)
        except OSError as e:
            logger.warning(f"Could not clean up {self.path}: {e}")
            return CleanupWarning(str(self.path), str(e))

        logger.info(f"Removed workspace {self.path}")
        return None
