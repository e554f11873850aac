"""Exception hierarchy shared by the brief wizard core and its adapters."""

from __future__ import annotations

from typing import Optional


class BriefWizardError(Exception):
    """Base class for errors raised by the brief wizard."""


class GatewayFailure(BriefWizardError):
    """Raised when an LLM call errors, times out, or returns no content.

    The failure is retryable: the session that issued the call is left in the
    state it had before the call.
    """

    def __init__(self, message: str, *, mode: Optional[str] = None) -> None:
        super().__init__(message)
        self.mode = mode


class SynthesisFailed(BriefWizardError):
    """Raised when the brief could not be synthesized from the transcript."""


class ValidationFailure(BriefWizardError, ValueError):
    """Raised when user input is rejected before any state mutation."""


class InvariantViolation(BriefWizardError, AssertionError):
    """Raised when the state machine is driven in an impossible order."""


class SessionBusyError(BriefWizardError):
    """Raised when an intent arrives while an LLM call is still in flight."""
