"""Prompt rules and the generic matcher that evaluates them.

Installer prompts often come without a trailing newline and arrive split
across reads, so matching runs against all text received since the last
match rather than line by line.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..errors import UnexpectedPrompt
from ..models import PromptAction, PromptRule

logger = logging.getLogger(__name__)

DEFAULT_MATCH_WINDOW = 2000


def default_rules(max_password_answers: int = 3) -> List[PromptRule]:
    """The standard rule table, highest priority first."""
    return [
        PromptRule(
            name="password",
            pattern=r"[Pp]assword( for [^:\r\n]*)?:",
            action=PromptAction.SEND_CREDENTIAL,
            max_hits=max_password_answers,
        ),
        # "Press RETURN/ENTER to continue" is one prompt; its wordings share a rule
        PromptRule(
            name="press-return",
            pattern=r"Press RETURN|RETURN|to continue",
            action=PromptAction.SEND_RETURN,
        ),
        PromptRule(name="agree", pattern=r"agree", action=PromptAction.SEND_RETURN),
        PromptRule(name="confirm-default-no", pattern=r"\(y/N\)", action=PromptAction.SEND_YES),
        PromptRule(name="confirm-default-yes", pattern=r"\(Y/n\)", action=PromptAction.SEND_RETURN),
    ]


DEFAULT_RULES = default_rules()


class PromptMatcher:
    """Scan buffered output against an ordered rule table.

    At most one rule fires per ``feed`` call and the first matching rule in
    table order wins. When a rule fires, the buffer is consumed through the
    end of the match and the rest of that line, as far as it has been
    received. Output arriving later is always scanned.
    """

    def __init__(self, rules: Iterable[PromptRule], window: int = DEFAULT_MATCH_WINDOW):
        self.rules = list(rules)
        self.window = window
        self._compiled = [(rule, rule.compiled()) for rule in self.rules]
        self._buffer = ""
        self._hits: Dict[str, int] = {rule.name: 0 for rule in self.rules}
        self.active = True

    @property
    def buffer(self) -> str:
        return self._buffer

    def hits(self, name: str) -> int:
        return self._hits.get(name, 0)

    def feed(self, text: str) -> Optional[PromptRule]:
        """Add output and return the rule that fired, if any.

        Raises:
            UnexpectedPrompt: A rule matched after using up its ``max_hits``
        """
        if not self.active:
            return None

        self._buffer += text
        fired = self._scan()
        if fired is None and len(self._buffer) > self.window:
            # Keep the tail only; a prompt longer than the window cannot match anyway
            self._buffer = self._buffer[-self.window:]
        return fired

    def _scan(self) -> Optional[PromptRule]:
        for rule, regex in self._compiled:
            match = regex.search(self._buffer)
            if match is None:
                continue

            rest = self._buffer[match.end():]
            newline = rest.find("\n")
            self._buffer = rest[newline + 1:] if newline >= 0 else ""

            if rule.max_hits is not None and self._hits[rule.name] >= rule.max_hits:
                raise UnexpectedPrompt(rule.name, self._hits[rule.name])

            self._hits[rule.name] += 1
            logger.debug(f"Prompt rule '{rule.name}' fired (hit {self._hits[rule.name]})")
            if not rule.keep_waiting:
                self.active = False
            return rule
        return None
