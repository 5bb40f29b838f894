"""
Agent Errors.

Every per-cycle error is local to that cycle: the scheduler logs it and
waits for the next tick. Only ConfigError is fatal.
"""

from typing import Optional


class AgentError(Exception):
    """Base class for all agent errors."""


class ConfigError(AgentError):
    """Invalid or incomplete configuration detected at startup."""


class CollectionError(AgentError):
    """A required metric query failed; no snapshot was produced."""

    def __init__(self, category: str, cause: BaseException):
        self.category = category
        self.cause = cause
        super().__init__(f"failed to collect {category}: {cause}")


class ReportError(AgentError):
    """Base class for registration and transmission failures."""


class RegistrationFailed(ReportError):
    """The collection endpoint did not confirm registration."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"registration failed: {reason}")


class TransportFailed(ReportError):
    """The HTTP request could not be completed."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"transport failed: {cause!r}")


class SerializationFailed(ReportError):
    """The payload could not be encoded as JSON."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"serialization failed: {cause}")


class ServerRejected(ReportError):
    """The collection endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"server rejected status report with HTTP {status_code}")


class EmptyBatchError(ReportError):
    """report_batch() was called with no snapshots."""

    def __init__(self):
        super().__init__("cannot report an empty batch")
