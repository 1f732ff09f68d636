"""
Toolchain - detect and install what a bootstrap run needs before it starts.

git comes with the Xcode Command Line Tools; Homebrew is installed with its
official installer, downloaded with httpx and run non-interactively. Both
installers stream their output to an observer like the provisioning script
does.
"""

import asyncio
import logging
import os
import platform
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from .errors import ToolInstallFailed
from .models import ToolStatus
from .observers import OutputObserver

logger = logging.getLogger(__name__)

BREW_PATH_ARM64 = "/opt/homebrew/bin/brew"
BREW_PATH_INTEL = "/usr/local/bin/brew"
CLT_ALREADY_INSTALLED = "command line tools are already installed"


def brew_path(machine: Optional[str] = None) -> str:
    """Where Homebrew lives for this CPU architecture."""
    machine = machine or platform.machine()
    return BREW_PATH_ARM64 if machine == "arm64" else BREW_PATH_INTEL


async def _stream(
    cmd: List[str],
    observer: OutputObserver,
    env: Optional[Dict[str, str]] = None,
) -> tuple[int, str]:
    """Run ``cmd``, relay stdout and stderr as they arrive, return (code, output)."""
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        stdin=asyncio.subprocess.DEVNULL,
        env=env,
    )

    captured: List[str] = []
    while True:
        data = await process.stdout.read(4096)
        if not data:
            break
        text = data.decode(errors="replace")
        captured.append(text)
        observer.write(text)

    returncode = await process.wait()
    return returncode, "".join(captured)


async def check_git(executable: str = "git") -> ToolStatus:
    """git is usable when ``git --version`` succeeds."""
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            "--version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError:
        return ToolStatus(installed=False, message="Git not found")

    stdout_bytes, _ = await process.communicate()
    if process.returncode == 0:
        return ToolStatus(
            installed=True,
            message=stdout_bytes.decode().strip() or "Git is installed",
            path=executable,
        )
    return ToolStatus(installed=False, message="Git check failed")


def check_brew(machine: Optional[str] = None) -> ToolStatus:
    """Homebrew is installed when its binary exists at the architecture's prefix."""
    path = brew_path(machine)
    if Path(path).exists():
        return ToolStatus(installed=True, message="Homebrew is installed", path=path)
    return ToolStatus(installed=False, message="Homebrew not found", path=path)


async def _download(url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """Fetch a text resource, following redirects."""
    if client is not None:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.text

    async with httpx.AsyncClient(timeout=30.0) as owned:
        response = await owned.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.text


async def install_brew(
    observer: OutputObserver,
    install_url: str,
    client: Optional[httpx.AsyncClient] = None,
) -> ToolStatus:
    """Download the official Homebrew installer and run it without prompts.

    Args:
        observer: Receives the installer's output
        install_url: Location of install.sh
        client: HTTP client to download with (default: a short-lived one)

    Raises:
        ToolInstallFailed: If the download fails or the installer exits non-zero
    """
    observer.write("Installing Homebrew...\n")
    try:
        script = await _download(install_url, client)
    except httpx.HTTPError as e:
        raise ToolInstallFailed(f"Failed to download Homebrew installer: {e}") from e

    if not script.strip():
        raise ToolInstallFailed(f"Homebrew installer at {install_url} is empty")

    cmd = ["/bin/bash", "-c", script]
    env = {**os.environ, "NONINTERACTIVE": "1"}

    try:
        returncode, _ = await _stream(cmd, observer, env=env)
    except OSError as e:
        raise ToolInstallFailed(f"Failed to install Homebrew: {e}") from e

    if returncode != 0:
        raise ToolInstallFailed(f"Failed to install Homebrew (exit code {returncode})")

    observer.write("✓ Homebrew installed successfully\n\n")
    logger.info("Homebrew installed")
    return ToolStatus(installed=True, message="Homebrew installed successfully", path=brew_path())


async def install_git(observer: OutputObserver, executable: str = "xcode-select") -> ToolStatus:
    """Trigger the Command Line Tools installer, which provides git.

    The installer is a system dialog that outlives this call, so any exit
    other than "already installed" means the operator has to finish the
    install and start macstrap again.

    Raises:
        ToolInstallFailed: If xcode-select cannot be started
    """
    observer.write("Git not found. Installing Xcode Command Line Tools...\n")
    observer.write('A system dialog will appear - please click "Install"\n\n')

    try:
        returncode, output = await _stream([executable, "--install"], observer)
    except OSError as e:
        raise ToolInstallFailed(f"Failed to start {executable}: {e}") from e

    if CLT_ALREADY_INSTALLED in output:
        observer.write("✓ Command Line Tools already installed\n\n")
        return ToolStatus(installed=True, message="Tools already installed")

    if returncode == 0:
        observer.write("\n✓ Installation dialog opened\n")
        message = "Installation dialog opened"
    else:
        # xcode-select may exit non-zero even though the dialog opened
        observer.write("\nInstallation dialog should have opened.\n")
        message = "Installation triggered"
    observer.write("Please complete the installation, then restart macstrap.\n\n")
    return ToolStatus(installed=False, message=message, needs_restart=True)
