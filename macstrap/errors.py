"""
macstrap errors - One exception type per way a bootstrap run can end badly.
"""


class MacstrapError(Exception):
    """Base exception for all macstrap errors."""
    pass


class CredentialError(MacstrapError):
    """Errors while acquiring the administrator password."""
    pass


class PromptCancelled(CredentialError):
    """The operator dismissed the password prompt."""

    def __init__(self, message: str = "Password prompt cancelled"):
        super().__init__(message)


class EmptySecret(CredentialError):
    """The password prompt was confirmed without a value."""

    def __init__(self, message: str = "No password provided"):
        super().__init__(message)


class WorkspaceError(MacstrapError):
    """Errors while materializing the workspace."""
    pass


class FetchFailed(WorkspaceError):
    """The source repository could not be cloned."""
    pass


class EntryPointMissing(WorkspaceError):
    """The cloned repository does not contain the provisioning script."""

    def __init__(self, entry_point: str):
        self.entry_point = entry_point
        super().__init__(f"{entry_point} not found in repository")


class AutomationError(MacstrapError):
    """Errors while driving the provisioning script."""
    pass


class SpawnFailed(AutomationError):
    """The provisioning script could not be started."""
    pass


class UnexpectedPrompt(AutomationError):
    """The script asked for something the automation refuses to answer again."""

    def __init__(self, rule_name: str, hits: int):
        self.rule_name = rule_name
        self.hits = hits
        super().__init__(
            f"Prompt '{rule_name}' appeared again after {hits} answer(s); refusing to re-answer"
        )


class HungChild(AutomationError):
    """Output ended but the script did not exit within the grace period."""

    def __init__(self, pid: int, grace_seconds: float):
        self.pid = pid
        self.grace_seconds = grace_seconds
        super().__init__(
            f"Output closed but process {pid} did not exit within {grace_seconds:g}s"
        )


class ProvisionerFailed(MacstrapError):
    """The provisioning script exited with a non-zero status."""

    def __init__(self, code: int):
        self.code = code
        if code < 0:
            message = f"Bootstrap script was killed by signal {-code}"
        else:
            message = f"Bootstrap script exited with code {code}"
        super().__init__(message)


class ToolInstallFailed(MacstrapError):
    """A prerequisite (Homebrew, Command Line Tools) failed to install."""
    pass


class CleanupWarning(MacstrapError):
    """Cleanup did not fully succeed. Recorded on the result, never raised."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Could not clean up {target}: {reason}")
