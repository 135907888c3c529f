"""Relay error taxonomy.

Each error carries the HTTP status and code used when it is reported before
streaming has begun.
"""


class RelayError(Exception):
    """Base class for errors reported as structured responses."""

    status_code = 500
    code = "relay_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConfigurationError(RelayError):
    """Raised when required configuration (the upstream credential) is missing."""

    status_code = 500
    code = "configuration_error"


class InvalidRequestError(RelayError):
    """Raised when the inbound chat request is malformed."""

    status_code = 400
    code = "invalid_request"


class UpstreamError(RelayError):
    """Raised when the completion provider fails or sends a malformed stream.

    Attributes:
        upstream_status: Provider HTTP status, if the provider answered.
    """

    status_code = 502
    code = "upstream_error"

    def __init__(self, detail: str, upstream_status: int | None = None) -> None:
        super().__init__(detail)
        self.upstream_status = upstream_status
