"""
External results provider interface.

A provider is built once (at startup) from a flat configuration map and then
asked for results once per query. Construction fails outright on bad
configuration; there is no half-configured provider.
"""

from abc import ABC, abstractmethod
from typing import Mapping, Optional, Tuple

from xjoin.errors import ConfigurationError, InvalidParameter, MissingParameter
from xjoin.jobs import DEFAULT_POLL_INTERVAL
from xjoin.models import ExternalResultSet

# Optional init keys shared by job-backed providers
INIT_POLL_INTERVAL = "poll.interval"
INIT_POLL_TIMEOUT = "poll.timeout"


class ExternalResultsProvider(ABC):
    """Computes external results for a query."""

    def __init__(self, config: Mapping[str, str]):
        self.initialize(config)

    @abstractmethod
    def initialize(self, config: Mapping[str, str]) -> None:
        """Read configuration. Raise ConfigurationError if it is unusable."""

    @abstractmethod
    async def compute_results(self, params: Mapping[str, str]) -> ExternalResultSet:
        """
        Compute results for one query from its (prefix-stripped) external
        parameters. May be called concurrently by different queries.
        """

    async def close(self):
        pass


def require_config(config: Mapping[str, str], name: str) -> str:
    value = config.get(name)
    if value is None or len(str(value)) == 0:
        raise ConfigurationError(f"external {name} parameter is required")
    return str(value)


def require_param(params: Mapping[str, str], name: str) -> str:
    value = params.get(name)
    if value is None or len(value) == 0:
        raise MissingParameter(name)
    return value


def float_param(params: Mapping[str, str], name: str) -> float:
    value = require_param(params, name)
    try:
        return float(value)
    except ValueError:
        raise InvalidParameter(name, value)


def int_param(params: Mapping[str, str], name: str) -> int:
    value = require_param(params, name)
    try:
        return int(value)
    except ValueError:
        raise InvalidParameter(name, value)


def poll_settings(config: Mapping[str, str]) -> Tuple[float, Optional[float]]:
    """Poll interval and optional timeout, in seconds."""
    try:
        interval = float(config.get(INIT_POLL_INTERVAL) or DEFAULT_POLL_INTERVAL)
        timeout = config.get(INIT_POLL_TIMEOUT)
        timeout = float(timeout) if timeout else None
    except ValueError as e:
        raise ConfigurationError(f"Bad poll setting: {e}") from e
    if interval < 0 or (timeout is not None and timeout <= 0):
        raise ConfigurationError("Poll interval must be >= 0 and timeout > 0")
    return interval, timeout
