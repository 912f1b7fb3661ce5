"""Exception hierarchy for the image generation service.

Every exception carries a fixed ``kind`` tag so callers can branch on the
failure category without inspecting ad hoc fields.
"""

from typing import Any, ClassVar, Dict, Optional

from imagegen.enums import ErrorKind


class ImageGenException(Exception):
    """Base exception for all service-specific exceptions."""

    kind: ClassVar[ErrorKind] = ErrorKind.Internal

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used for structured logging."""
        return {"kind": self.kind.value, "message": self.message, **self.details}


class UpstreamError(ImageGenException):
    """Raised when the generation provider rejects or fails a request."""

    kind = ErrorKind.Upstream

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status", status_code)


class DownloadError(ImageGenException):
    """Raised when an asset fetch exhausts its retries."""

    kind = ErrorKind.Download

    def __init__(
        self,
        message: str,
        url: str,
        attempts: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.url = url
        self.attempts = attempts
        self.details.setdefault("attempts", attempts)


class PersistError(ImageGenException):
    """Raised when creating the output directory or writing an image fails.

    ``index`` is the position of the failing asset in the batch, or ``None``
    when the failure happened before any asset was processed (directory
    creation).
    """

    kind = ErrorKind.Persist

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.index = index
        self.path = path
        self.cause = cause
        if index is not None:
            self.details.setdefault("index", index)
        if path is not None:
            self.details.setdefault("path", path)
        if cause is not None:
            self.details.setdefault("system_error", str(cause))


class InternalError(ImageGenException):
    """Raised for persistence failures and anything unexpected."""

    kind = ErrorKind.Internal

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.cause = cause
        if cause is not None:
            self.details.setdefault("system_error", str(cause))


class ConfigurationError(ImageGenException):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.Configuration

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.config_key = config_key
