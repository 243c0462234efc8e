"""
Error classes for external joins.

Every error here fails the whole query (or, for ConfigurationError, stops the
provider from being built at all). Keys with no external match are not errors
and never raise.
"""

from typing import Optional


class XJoinError(Exception):
    """Base exception for xjoin."""
    pass


class ConfigurationError(XJoinError):
    """Missing or invalid provider initialisation parameter."""
    pass


class MissingParameter(XJoinError):
    """A required per-query parameter is absent or empty."""

    def __init__(self, name: str):
        super().__init__(f"Missing or empty {name}")
        self.name = name


class InvalidParameter(MissingParameter):
    """A per-query parameter is present but cannot be used."""

    def __init__(self, name: str, value: str):
        XJoinError.__init__(self, f"Invalid value for {name}: {value!r}")
        self.name = name
        self.value = value


class TransportError(XJoinError):
    """Network or HTTP failure talking to a remote service."""
    pass


class RemoteJobFailure(XJoinError):
    """The remote service reported that the job failed."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class UnexpectedState(XJoinError):
    """The remote service reported a status we do not know how to handle."""

    def __init__(self, status: str, job_id: Optional[str] = None):
        super().__init__(f"Unexpected job status: {status!r} (job {job_id})")
        self.status = status
        self.job_id = job_id


class JobInterrupted(XJoinError):
    """The local wait for a job was cancelled or timed out."""

    def __init__(self, job_id: Optional[str], reason: str = "interrupted"):
        super().__init__(f"Job {job_id} was {reason}")
        self.job_id = job_id
        self.reason = reason


class PayloadError(XJoinError):
    """A finished job returned a payload that could not be parsed."""
    pass
