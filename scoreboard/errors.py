"""
Error taxonomy for the scoreboard.

Gateway errors carry the HTTP status (when one was received) and whatever
detail the remote service returned, so callers can show the raw reason.
"""
from typing import Any, Optional


class ScoreboardError(Exception):
    """Base class for every error raised by this package."""
    pass


class ConfigurationError(ScoreboardError):
    """Missing credentials, collection group or board table."""
    pass


class ValidationError(ScoreboardError):
    """Raised before any network call when input is unusable."""
    pass


class GatewayError(ScoreboardError):
    """A remote call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "status_code": self.status_code,
            "details": self.details,
        }


class AuthError(GatewayError):
    """Credentials absent or rejected by the remote service."""
    pass


class CredentialsMissing(ConfigurationError, AuthError):
    """No credentials configured at all. Fatal until fixed, never retried."""

    def __init__(self, message: str, missing=()):
        AuthError.__init__(self, message)
        self.missing = list(missing)


class NotFound(GatewayError):
    """The record or collection does not exist remotely."""
    pass


class MalformedResponse(GatewayError):
    """Payload was not JSON or lacked the expected shape."""
    pass


class RemoteUnavailable(GatewayError):
    """Transport failure or a 5xx from the remote service."""
    pass


class MediaError(ScoreboardError):
    """Base class for screenshot upload/attach failures."""
    pass


class UploadFailed(MediaError):
    """The image host rejected the upload or could not be reached."""
    pass


class AttachFailed(MediaError):
    """Image uploaded but the record could not be patched with its URL."""

    def __init__(self, message: str, image_url: str = ""):
        super().__init__(message)
        self.image_url = image_url


class CaptureFailed(ScoreboardError):
    """The screenshot capture service failed to produce an image."""
    pass
