from __future__ import annotations


class SdsAutomationError(Exception):
    """Base exception for the SDS automation engine."""


class TransientExternalError(SdsAutomationError):
    """Network failure, timeout, rate limit or 5xx from an external service.

    Retried once within a run; afterwards the candidate or record is
    deferred to the next scheduled run.
    """

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class PermanentExtractionError(SdsAutomationError):
    """The document cannot be turned into structured data (malformed, empty, unparsable)."""


class ConfigurationError(SdsAutomationError):
    """A tenant lacks the credentials an adapter needs."""


class DataIntegrityViolation(SdsAutomationError):
    """A tenant-isolation check failed. Halts the job."""

    def __init__(self, message: str, tenant_id: object | None = None) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id


class IllegalTransitionError(SdsAutomationError):
    """A candidate document was moved out of a terminal or unknown state."""
