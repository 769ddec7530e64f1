class LinearCodexError(Exception):
    """Base error for failures surfaced to the operator as a one-line message."""


class ConfigError(LinearCodexError):
    """Required configuration (the Linear API key) is missing or invalid."""


class NotFoundError(LinearCodexError):
    """The issue does not exist or the token cannot see it.

    Raised for every GraphQL-level error list, authentication errors included.
    """


class AuthError(LinearCodexError):
    """Linear rejected the credential at the HTTP level (401/403)."""


class NetworkError(LinearCodexError):
    """Transport failure or an unusable response from the GraphQL endpoint."""


class BrowserLaunchError(LinearCodexError):
    """No debuggable Chrome could be attached to or started."""
