"""
macstrap Driver - fetch the provisioning script and run it unattended.

Run Pipeline: Acquire password → Create workspace → Clone → Verify entry point
→ Run under prompt automation → Reconcile exit status → Clean up

The password is requested before anything touches the filesystem, so a
cancelled prompt leaves nothing behind. Cleanup always runs after the script
has been reaped, and cleanup problems are reported without changing the
outcome.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import SecretStr

from .automation import AutomationSession, default_rules
from .credentials import DialogPrompt, SecretPrompt, acquire_credential
from .errors import CleanupWarning, MacstrapError, ProvisionerFailed
from .models import PromptRule, RunResult, RunStatus
from .observers import OutputObserver
from .settings import MacstrapSettings, get_settings
from .workspace import Fetcher, GitFetcher, Workspace

logger = logging.getLogger(__name__)

RULE = "=" * 50


class BootstrapDriver:
    """Drives one provisioning run at a time.

    Every collaborator is passed in, so each driver is a self-contained
    context and several drivers can run side by side.
    """

    def __init__(
        self,
        observer: OutputObserver,
        prompt: Optional[SecretPrompt] = None,
        fetcher: Optional[Fetcher] = None,
        settings: Optional[MacstrapSettings] = None,
        rules: Optional[Iterable[PromptRule]] = None,
    ):
        """
        Initialize BootstrapDriver.

        Args:
            observer: Receives status lines and the script's output
            prompt: Secure password prompt (default: macOS dialog)
            fetcher: Materializes the repository (default: git clone)
            settings: Configuration (default: global settings)
            rules: Prompt rule table (default: standard rules)
        """
        self.settings = settings or get_settings()
        self.observer = observer
        self.prompt = prompt or DialogPrompt(executable=self.settings.osascript_executable)
        self.fetcher = fetcher or GitFetcher(
            executable=self.settings.git_executable,
            branch=self.settings.branch,
        )
        self.rules = list(rules) if rules is not None else default_rules(self.settings.max_password_answers)
        self.session: Optional[AutomationSession] = None

        logger.debug("BootstrapDriver initialized")

    def _emit(self, text: str) -> None:
        self.observer.write(text)

    def _child_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        user = env.get("USER") or env.get("LOGNAME")
        if user:
            env["USER"] = user
        return env

    async def run(self, repo_url: str) -> RunResult:
        """
        Full pipeline: password → workspace → clone → run script → clean up.

        Args:
            repo_url: Repository containing the provisioning script

        Returns:
            RunResult describing the outcome. Fatal errors are reported in the
            result; only cancellation propagates.
        """
        started = time.monotonic()
        self.session = None
        self._emit("Starting bootstrap process...\n")
        logger.info(f"Starting bootstrap run for: {repo_url}")

        # 1. Acquire the password before any side effect
        try:
            self._emit("\nRequesting administrator password...\n")
            credential = await acquire_credential(self.prompt)
        except MacstrapError as e:
            return self._fail(e, started)
        self._emit("Password received\n")

        # 2. Create the workspace
        try:
            workspace = Workspace.create(self.settings.workspace_root, self.settings.workspace_prefix)
        except OSError as e:
            return self._fail(MacstrapError(f"Could not create workspace: {e}"), started)
        self._emit(f"Temp directory: {workspace.path}\n")

        result: Optional[RunResult] = None
        try:
            result = await self._provision(repo_url, workspace, credential)
        except MacstrapError as e:
            result = self._fail(e, started, workspace.path)
        finally:
            # Runs on cancellation too; the session has already reaped the child
            warnings = self._cleanup(workspace)
            if result is not None:
                result.warnings.extend(warnings)
                result.duration = time.monotonic() - started

        return result

    async def _provision(self, repo_url: str, workspace: Workspace, credential: SecretStr) -> RunResult:
        entry_name = self.settings.entry_point

        # 3. Clone the repository
        self._emit(f"Cloning repository: {repo_url}\n")
        await workspace.fetch(repo_url, self.fetcher)
        self._emit("Repository cloned successfully\n")

        # 4. Verify and prepare the entry point
        entry = workspace.prepare_entry_point(entry_name)
        self._emit(f"Found {entry_name}, making it executable\n")

        # 5. Run it under prompt automation
        self._emit(f"\nExecuting {entry_name}...\n")
        self._emit(f"{RULE}\n")
        self.session = AutomationSession(
            argv=[self.settings.shell, str(entry)],
            credential=credential,
            observer=self.observer,
            rules=self.rules,
            cwd=str(workspace.path),
            env=self._child_env(),
            exit_grace_seconds=self.settings.exit_grace_seconds,
            terminate_grace_seconds=self.settings.terminate_grace_seconds,
            match_window=self.settings.match_window,
        )
        try:
            exit_code = await self.session.run()
        finally:
            self._emit(f"\n{RULE}")

        # 6. Reconcile
        if exit_code != 0:
            self._emit(f"\n✗ Bootstrap failed with exit code {exit_code}\n")
            raise ProvisionerFailed(exit_code)

        self._emit("\n✓ Bootstrap completed successfully!\n")
        logger.info("Bootstrap run complete")
        return RunResult(
            status=RunStatus.SUCCEEDED,
            exit_code=exit_code,
            workspace=workspace.path,
        )

    def _fail(self, error: MacstrapError, started: float, workspace: Optional[Path] = None) -> RunResult:
        self._emit(f"\nERROR: {error}\n")
        logger.error(f"Bootstrap run failed: {error}")
        return RunResult(
            status=RunStatus.FAILED,
            exit_code=error.code if isinstance(error, ProvisionerFailed) else None,
            error=error,
            workspace=workspace,
            duration=time.monotonic() - started,
        )

    def _cleanup(self, workspace: Workspace) -> list[CleanupWarning]:
        warnings: list[CleanupWarning] = []
        if self.session is not None:
            warnings.extend(self.session.cleanup_warnings)

        warning = workspace.remove()
        if warning is None:
            self._emit("Cleaned up temporary files\n")
        else:
            warnings.append(warning)

        for warning in warnings:
            self._emit(f"Warning: {warning}\n")
        return warnings


def run_bootstrap(repo_url: str, observer: OutputObserver, **kwargs) -> RunResult:
    """Synchronous convenience wrapper around ``BootstrapDriver.run``."""
    driver = BootstrapDriver(observer, **kwargs)
    return asyncio.run(driver.run(repo_url))
