"""
macstrap CLI - Bootstrap a macOS developer workstation from a repository.
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .credentials import DialogPrompt, TerminalPrompt
from .driver import BootstrapDriver
from .errors import MacstrapError
from .models import ToolStatus
from .observers import ConsoleObserver
from .settings import get_settings
from .toolchain import check_brew, check_git, install_brew, install_git

# Setup
app = typer.Typer(
    name="macstrap",
    help="Bootstrap a macOS developer workstation from a repository",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


def _create_command_panel(title: str, color: str, detail: str) -> Panel:
    """Create a Rich Panel for command display.

    Args:
        title: Command title (e.g., "macstrap Run")
        color: Border color (e.g., "blue", "cyan")
        detail: Second line of the panel

    Returns:
        Formatted Rich Panel
    """
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n{detail}",
        border_style=color,
    )


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Print a failure line and exit with code 1.

    Raises:
        typer.Exit: Always exits with code 1
    """
    console.print(
        f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {e}"
    )
    raise typer.Exit(code=1)


def _print_status(name: str, status: ToolStatus) -> None:
    if status.installed:
        console.print(f"[green]✓[/green] {name}: {status.message}")
    else:
        console.print(f"[yellow]✗[/yellow] {name}: {status.message}")


@app.command()
def run(
    repo_url: Optional[str] = typer.Argument(
        None, help="Repository containing the provisioning script (overrides .env)"
    ),
    branch: Optional[str] = typer.Option(
        None, "--branch", help="Branch to clone (overrides .env)"
    ),
    entry_point: Optional[str] = typer.Option(
        None, "--entry-point", help="Script to run inside the repository (overrides .env)"
    ),
    terminal: bool = typer.Option(
        False, "--terminal", help="Ask for the password in the terminal instead of a dialog"
    ),
):
    """Clone the repository and run its provisioning script unattended."""
    settings = get_settings()
    updates = {}
    if branch:
        updates["branch"] = branch
    if entry_point:
        updates["entry_point"] = entry_point
    if updates:
        settings = settings.model_copy(update=updates)

    repo_url = repo_url or settings.repo_url
    if not repo_url:
        console.print("[bold red]✗ Error:[/bold red] No repository given")
        console.print("[dim]Hint: pass REPO_URL or set MACSTRAP_REPO_URL[/dim]")
        raise typer.Exit(code=1)

    console.print(_create_command_panel("macstrap Run", "blue", f"Repository: {repo_url}"))

    if terminal:
        prompt = TerminalPrompt(console=console)
    else:
        prompt = DialogPrompt(executable=settings.osascript_executable)

    driver = BootstrapDriver(ConsoleObserver(console), prompt=prompt, settings=settings)
    try:
        result = asyncio.run(driver.run(repo_url))
    except KeyboardInterrupt:
        console.print("\n[bold red]✗ Bootstrap cancelled[/bold red]")
        raise typer.Exit(code=130)

    if not result.success:
        _handle_command_error(result.error, "bootstrap")

    console.print(f"\n[bold green]✓ {result.message}[/bold green]")
    console.print(f"[dim]Duration: {result.duration:.1f}s[/dim]")


@app.command()
def check():
    """Report whether git and Homebrew are installed."""
    settings = get_settings()
    console.print(_create_command_panel("macstrap Check", "cyan", "Prerequisites"))

    git_status = asyncio.run(check_git(settings.git_executable))
    brew_status = check_brew()
    _print_status("git", git_status)
    _print_status("Homebrew", brew_status)

    if not (git_status.installed and brew_status.installed):
        console.print("\n[dim]Run 'macstrap install-git' or 'macstrap install-brew' to fix.[/dim]")
        raise typer.Exit(code=1)


@app.command("install-brew")
def install_brew_command():
    """Install Homebrew with the official non-interactive installer."""
    settings = get_settings()
    status = check_brew()
    if status.installed:
        _print_status("Homebrew", status)
        return

    console.print(_create_command_panel("macstrap Install", "magenta", "Homebrew"))
    try:
        status = asyncio.run(install_brew(ConsoleObserver(console), settings.brew_install_url))
    except MacstrapError as e:
        _handle_command_error(e, "install")
    _print_status("Homebrew", status)


@app.command("install-git")
def install_git_command():
    """Install git through the Xcode Command Line Tools."""
    settings = get_settings()
    status = asyncio.run(check_git(settings.git_executable))
    if status.installed:
        _print_status("git", status)
        return

    console.print(_create_command_panel("macstrap Install", "magenta", "Xcode Command Line Tools"))
    try:
        status = asyncio.run(install_git(ConsoleObserver(console), settings.xcode_select_executable))
    except MacstrapError as e:
        _handle_command_error(e, "install")
    _print_status("git", status)
