"""Data models shared across macstrap: prompt rules, run results, tool status."""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import CleanupWarning, MacstrapError


class PromptAction(str, Enum):
    """What to type when a prompt rule fires."""
    SEND_CREDENTIAL = "send_credential"   # Administrator password + return
    SEND_RETURN = "send_return"           # Bare return, accepts the default
    SEND_YES = "send_yes"                 # "y" + return


class PromptRule(BaseModel):
    """A declarative pairing of output pattern and typed response.

    Attributes:
        name: Short identifier used in logs and errors
        pattern: Regular expression searched for in the output received so far
        action: Response to inject when the pattern matches
        keep_waiting: Keep matching after this rule fires (False ends matching)
        max_hits: How many times the rule may fire, unbounded when None

    Example:
        >>> PromptRule(name="confirm", pattern=r"\\(y/N\\)", action=PromptAction.SEND_YES)
    """

    name: str = Field(..., description="Rule identifier")
    pattern: str = Field(..., description="Regular expression to search for")
    action: PromptAction = Field(..., description="Response to inject")
    keep_waiting: bool = Field(True, description="Continue matching after firing")
    max_hits: Optional[int] = Field(None, ge=1, description="Upper bound on firings")

    model_config = {"frozen": True}

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value

    def compiled(self) -> "re.Pattern[str]":
        return re.compile(self.pattern)


class RunStatus(str, Enum):
    """Terminal outcome of one bootstrap run."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of one driver invocation.

    Cleanup warnings are collected here and never change ``status``.
    """

    status: RunStatus
    exit_code: Optional[int] = None
    error: Optional[MacstrapError] = None
    warnings: List[CleanupWarning] = field(default_factory=list)
    workspace: Optional[Path] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def message(self) -> str:
        if self.success:
            return "Bootstrap completed successfully"
        return str(self.error) if self.error else "Bootstrap failed"


class ToolStatus(BaseModel):
    """Result of checking for (or installing) a prerequisite tool.

    Attributes:
        installed: Whether the tool is available
        message: Human-readable summary
        path: Location of the tool binary, when known
        needs_restart: The install continues outside macstrap (system dialog)
    """

    installed: bool = Field(..., description="Tool is available")
    message: str = Field(..., description="Summary for the operator")
    path: Optional[str] = Field(None, description="Binary location")
    needs_restart: bool = Field(False, description="Restart macstrap after finishing the install")
