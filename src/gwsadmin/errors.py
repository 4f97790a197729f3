"""
Exceptions raised by the directory client.
Everything derives from DirectoryError so callers can catch the lot in one go,
but the HTTP ones carry the status and raw body so the caller can decide
how loud to be about it.
"""

class DirectoryError(Exception):
    """Base for all gwsadmin errors"""
    pass

class ConfigurationError(DirectoryError, ValueError):
    """
    Invalid argument or configuration value.  Also a ValueError since that is
    what most of these would have been anyway.
    """
    pass

class AuthError(DirectoryError):
    """
    Could not come up with a bearer token.  No HTTP call is attempted after this.
    """
    def __init__(self, reason: str) -> None:
        super().__init__(f"Authentication failed: {reason}")
        self.reason = reason

class ProfileNotFoundError(DirectoryError):
    """The named profile has no stored credentials"""
    def __init__(self, name: str, location: str) -> None:
        super().__init__(f"Profile '{name}' not found in {location}")
        self.name = name
        self.location = location

class TransportError(DirectoryError):
    """
    Network level failure (DNS, refused connection, timeout).  The originating
    requests exception is chained as __cause__.
    """
    def __init__(self, reason: str) -> None:
        super().__init__(f"Transport failure: {reason}")
        self.reason = reason

class RequestFailed(DirectoryError):
    """Non-2xx response that is being surfaced to the caller"""
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Request failed with HTTP {status}: {body}")
        self.status = status
        self.body = body

class RateLimitExhausted(RequestFailed):
    """Still being told 503 after using up the whole retry budget"""
    def __init__(self, status: int, body: str, attempts: int) -> None:
        super().__init__(status, body)
        self.attempts = attempts
        self.args = (f"Rate limited after {attempts} attempts, HTTP {status}: {body}",)

class ResponseDecodeError(DirectoryError):
    """A success response whose body isn't JSON"""
    def __init__(self, body: str) -> None:
        super().__init__(f"Response body is not valid JSON: {body[:200]}")
        self.body = body

class PageLimitExceeded(DirectoryError):
    """Hit the configured page ceiling while the service still had more to give"""
    def __init__(self, pages: int) -> None:
        super().__init__(f"Stopped after {pages} pages with a continuation token still present")
        self.pages = pages

class OperationCancelled(DirectoryError):
    """The caller's cancel event was set before the next request or sleep"""
    pass
