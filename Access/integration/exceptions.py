class IntegrationError(Exception):
    """Base integration exception."""


class ContractError(IntegrationError):
    """Raised for non-retryable edge function issues."""


class UpstreamUnavailable(IntegrationError):
    """Raised when the edge function backend is unavailable."""
