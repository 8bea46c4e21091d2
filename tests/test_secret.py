"""Tests for proterm.session.secret.SecretPromptDetector."""

from __future__ import annotations

import re

import pytest

from proterm.session.secret import SecretPromptDetector

PROMPT = "alice@host ~ % "


@pytest.fixture
def detector() -> SecretPromptDetector:
    return SecretPromptDetector()


class TestIsSecretPrompt:
    @pytest.mark.parametrize(
        "line",
        [
            "Password:",
            "Password: ",
            "[sudo] password for alice: ",
            "alice@example.org's password: ",
            "Enter passphrase for key '/home/alice/.ssh/id_ed25519': ",
            "Verification code: ",
            "Enter your password",
            "PIN: ",
        ],
    )
    def test_matches(self, detector: SecretPromptDetector, line: str) -> None:
        assert detector.is_secret_prompt(line)

    @pytest.mark.parametrize(
        "line",
        [
            "",
            PROMPT,
            "password changed successfully",
            "Updating passwords...",
            "spinning up: done",
            "$ ",
        ],
    )
    def test_no_match(self, detector: SecretPromptDetector, line: str) -> None:
        assert not detector.is_secret_prompt(line)


class TestEvaluate:
    def test_prompt_line_enters(self, detector: SecretPromptDetector) -> None:
        assert detector.evaluate("Password: ", PROMPT, awaiting=False)

    def test_session_prompt_leaves(self, detector: SecretPromptDetector) -> None:
        assert not detector.evaluate(PROMPT, PROMPT, awaiting=True)

    def test_other_lines_keep_state(self, detector: SecretPromptDetector) -> None:
        assert detector.evaluate("", PROMPT, awaiting=True)
        assert not detector.evaluate("compiling...", PROMPT, awaiting=False)

    def test_custom_patterns(self) -> None:
        detector = SecretPromptDetector(patterns=(re.compile(r"token\?\s*$"),))
        assert detector.is_secret_prompt("API token? ")
        assert not detector.is_secret_prompt("Password: ")
