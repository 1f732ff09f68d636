"""
macstrap - Unattended bootstrap of a macOS developer workstation.

Clone a repository holding a provisioning script, ask once for the
administrator password, then run the script to completion:
- sudo password prompts are answered with the stored password
- installer confirmations ("Press RETURN", "(y/N)", license agreements) are accepted
- all output is relayed live, with the password masked
- the cloned workspace is removed whatever the outcome
"""

from .driver import BootstrapDriver, run_bootstrap
from .models import RunResult, RunStatus
from .settings import MacstrapSettings, get_settings, reload_settings

__version__ = "0.1.0"
__all__ = [
    "BootstrapDriver",
    "MacstrapSettings",
    "RunResult",
    "RunStatus",
    "get_settings",
    "reload_settings",
    "run_bootstrap",
]
