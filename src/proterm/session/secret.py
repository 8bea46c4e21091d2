"""Credential-prompt detection over the tail of a session's scrollback.

This is a heuristic, not a grammar. A false positive only means the view
offers a hidden input field it did not need.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # "Password:", "[sudo] password for alice:", "Enter passphrase for key 'x':"
    re.compile(
        r"\b(password|passphrase|passcode|pin|verification code|one-time code)\b"
        r"[^\n]*:\s*$",
        re.IGNORECASE,
    ),
    re.compile(r"\benter (your )?password\b[^\n]*$", re.IGNORECASE),
)


@dataclass(frozen=True)
class SecretPromptDetector:
    """Predicate re-evaluated after every scrollback mutation."""

    patterns: tuple[re.Pattern[str], ...] = DEFAULT_PATTERNS

    def is_secret_prompt(self, line: str) -> bool:
        return any(p.search(line) for p in self.patterns)

    def evaluate(self, last_line: str, prompt: str, awaiting: bool) -> bool:
        """Whether the session should now be awaiting a secret.

        Args:
            last_line: Text after the final newline of the scrollback.
            prompt: The session's current prompt string.
            awaiting: Current classification.
        """
        if self.is_secret_prompt(last_line):
            return True
        if last_line == prompt:
            return False
        return awaiting
