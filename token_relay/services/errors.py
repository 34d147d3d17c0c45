"""Errors raised while acquiring a fresh token from the source."""


class TokenFetchError(Exception):
    """Base class for every token refresh failure."""


class SessionUnavailable(TokenFetchError):
    """The headless browser session could not be started."""


class InteractionFailed(TokenFetchError):
    """Navigation or page setup failed before the token request was seen."""


class UpstreamInvalidResponse(TokenFetchError):
    """The token request was seen but its response was missing, not ok or unparseable."""


class DeadlineExceeded(TokenFetchError):
    """No token request was observed before the fetch deadline."""
