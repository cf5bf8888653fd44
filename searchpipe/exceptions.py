class SearchpipeError(Exception):
    """Base class for every error raised by a transfer run."""


class ConfigError(SearchpipeError):
    """Raised when run arguments are invalid, before any network call."""


class InvalidTarget(ConfigError):
    """Raised when a cluster URI cannot be resolved to a host."""

    def __init__(self, uri: str, reason: str) -> None:
        self.uri = uri
        super().__init__(f"Invalid cluster resource '{uri}': {reason}")


class InvalidFilter(ConfigError):
    """Raised when a query filter is not a JSON object."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid query filter: {message}")


class ClusterError(SearchpipeError):
    """Raised when a request to the cluster fails at transport or HTTP level."""

    def __init__(self, action: str, cause: Exception) -> None:
        self.action = action
        super().__init__(f"Unable to {action}: {cause}")


class ProtocolError(SearchpipeError):
    """Raised when a cluster response is missing an expected field."""


class MalformedRecordError(SearchpipeError):
    """Raised when an input line cannot be turned into a bulk operation."""
