"""Shared helpers for macstrap tests."""

import shutil
import textwrap
from pathlib import Path

from macstrap.errors import FetchFailed


def write_script(path: Path, body: str) -> Path:
    """Write a dedented Python script and return its path."""
    path.write_text(textwrap.dedent(body).lstrip())
    return path


class CopyFetcher:
    """Fetcher that copies a local template directory instead of cloning."""

    def __init__(self, template: Path):
        self.template = template
        self.calls = []

    async def fetch(self, source: str, dest: Path) -> None:
        self.calls.append(source)
        shutil.copytree(self.template, dest, dirs_exist_ok=True)


class FailingFetcher:
    """Fetcher that leaves a partial checkout behind and then fails."""

    def __init__(self):
        self.calls = []

    async def fetch(self, source: str, dest: Path) -> None:
        self.calls.append(source)
        (dest / "partial").write_text("half a clone")
        raise FetchFailed(f"Failed to clone repository {source}: remote hung up")
