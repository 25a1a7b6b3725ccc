from typing import Optional


class TileMirrorException(Exception):
    """Base exception for tile mirror"""
    pass


class ConfigurationError(TileMirrorException):
    """Configuration related errors"""
    pass


class ValidationError(TileMirrorException):
    """Validation related errors"""
    pass


class DownloadError(TileMirrorException):
    """Download related errors"""
    pass


class FetchError(DownloadError):
    """Tile server kept rejecting a tile request"""

    def __init__(self, url: str, status_code: int, reason: str, attempts: int):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"tile server responded with status code {status_code} ({reason}) "
            f"for {url} after {attempts} attempts"
        )


class RetryLimitExceeded(DownloadError):
    """Configured retry ceiling reached for a transient failure"""

    def __init__(self, url: str, attempts: int, last_error: Optional[str] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        message = f"giving up on {url} after {attempts} attempts"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


class StoreError(TileMirrorException):
    """Content store related errors"""
    pass


class EntryNotFoundError(StoreError):
    """Requested entry does not exist in the store"""

    def __init__(self, path_segments):
        self.path_segments = list(path_segments)
        super().__init__(f"entry not found: {'/'.join(self.path_segments)}")


class TraversalCancelled(TileMirrorException):
    """Traversal stopped by its own cancellation token, not by a failure"""
    pass
