"""
macstrap Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent


class MacstrapSettings(BaseSettings):
    """
    macstrap configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in project root
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="MACSTRAP_",  # All macstrap env vars must start with MACSTRAP_
    )

    # Source Configuration
    repo_url: str | None = Field(
        default=None,
        description="Repository holding the provisioning script (env: MACSTRAP_REPO_URL)",
    )

    branch: str | None = Field(
        default=None,
        description="Branch to clone, default branch when unset (env: MACSTRAP_BRANCH)",
    )

    entry_point: str = Field(
        default="bootstrap.sh",
        description="Provisioning script inside the repository (env: MACSTRAP_ENTRY_POINT)",
    )

    shell: str = Field(
        default="/bin/bash",
        description="Interpreter used to run the entry point (env: MACSTRAP_SHELL)",
    )

    # Workspace Configuration
    workspace_root: Path | None = Field(
        default=None,
        description="Parent directory for workspaces, system temp dir when unset (env: MACSTRAP_WORKSPACE_ROOT)",
    )

    workspace_prefix: str = Field(
        default="bootstrap-",
        description="Name prefix for workspace directories (env: MACSTRAP_WORKSPACE_PREFIX)",
    )

    # External Tools
    git_executable: str = Field(
        default="git",
        description="git binary used to clone the repository (env: MACSTRAP_GIT_EXECUTABLE)",
    )

    osascript_executable: str = Field(
        default="osascript",
        description="osascript binary used for the password dialog (env: MACSTRAP_OSASCRIPT_EXECUTABLE)",
    )

    xcode_select_executable: str = Field(
        default="xcode-select",
        description="xcode-select binary used to install git (env: MACSTRAP_XCODE_SELECT_EXECUTABLE)",
    )

    brew_install_url: str = Field(
        default="https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh",
        description="Homebrew install script (env: MACSTRAP_BREW_INSTALL_URL)",
    )

    # Automation Configuration
    max_password_answers: int = Field(
        default=3,
        ge=1,
        description="How many password prompts are answered before giving up (env: MACSTRAP_MAX_PASSWORD_ANSWERS)",
    )

    match_window: int = Field(
        default=2000,
        ge=64,
        description="Characters of unmatched output kept for prompt matching (env: MACSTRAP_MATCH_WINDOW)",
    )

    exit_grace_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Wait for exit after output closes before treating the script as hung (env: MACSTRAP_EXIT_GRACE_SECONDS)",
    )

    terminate_grace_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Wait after SIGTERM before sending SIGKILL (env: MACSTRAP_TERMINATE_GRACE_SECONDS)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: MACSTRAP_LOG_LEVEL)",
    )


# Global settings instance
_settings: MacstrapSettings | None = None


def get_settings() -> MacstrapSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        MacstrapSettings instance
    """
    global _settings
    if _settings is None:
        _settings = MacstrapSettings()
    return _settings


def reload_settings() -> MacstrapSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh MacstrapSettings instance
    """
    global _settings
    _settings = MacstrapSettings()
    return _settings
